import os
import sys
import requests

from dotenv import load_dotenv, find_dotenv


load_dotenv(find_dotenv())


def main() -> int:
    base_url = (
        os.getenv("ISLAND_ENTRY_API_URL")
        or os.getenv("NEXT_PUBLIC_API_URL")
        or os.getenv("EXPO_PUBLIC_API_URL")
        or ""
    ).strip()

    if not base_url:
        print("Missing ISLAND_ENTRY_API_URL (or NEXT_PUBLIC_API_URL / EXPO_PUBLIC_API_URL)")
        return 2

    base = base_url.rstrip("/")

    # 1) The active entry fee; registrations with online payment need it
    resp = requests.get(f"{base}/prices/active", timeout=15)
    print("GET prices/active:", resp.status_code)
    print(resp.text)

    # 2) Optionally look up one registration by its unique code
    if "--code" in sys.argv:
        idx = sys.argv.index("--code")
        if idx + 1 >= len(sys.argv):
            print("--code needs a value")
            return 2
        code = sys.argv[idx + 1].strip().upper()
        resp2 = requests.get(f"{base}/island-entry/status/{code}", timeout=15)
        print(f"GET island-entry/status/{code}:", resp2.status_code)
        print(resp2.text)

    return 0 if resp.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
