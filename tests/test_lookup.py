import unittest

from fakes import FakeBackend

from island_entry.backend.client import Registration
from island_entry.registration.cancel import CancelToken
from island_entry.registration.lookup import NO_CODE_MESSAGE, LookupState, ResultLookup


class ResultLookupTests(unittest.TestCase):
    def setUp(self):
        self.backend = FakeBackend()
        self.backend.registrations["ABC123"] = Registration(
            unique_code="ABC123",
            qr_code_url="https://qr.example/ABC123.png",
        )
        self.lookup = ResultLookup(self.backend)

    def test_no_code_makes_no_call(self):
        for code in (None, "", "   "):
            view = self.lookup.load(code)
            self.assertEqual(view.state, LookupState.NO_CODE)
            self.assertEqual(view.message, NO_CODE_MESSAGE)
        self.assertEqual(self.backend.calls, [])

    def test_ready_view(self):
        view = self.lookup.load("abc123")
        self.assertEqual(view.state, LookupState.READY)
        self.assertEqual(view.unique_code, "ABC123")
        self.assertEqual(view.qr_code_url, "https://qr.example/ABC123.png")
        self.assertEqual(self.lookup.view, view)
        self.assertEqual(
            view.to_dict(),
            {"state": "ready", "unique_code": "ABC123", "qr_code_url": "https://qr.example/ABC123.png"},
        )

    def test_error_view(self):
        view = self.lookup.load("NOPE00")
        self.assertEqual(view.state, LookupState.ERROR)
        self.assertIn("HTTP 404", view.message)

    def test_loading_while_fetch_in_flight(self):
        states = []
        original = self.backend.get_registration_result

        def spy(code):
            states.append(self.lookup.view.state)
            return original(code)

        self.backend.get_registration_result = spy
        self.lookup.load("ABC123")
        self.assertEqual(states, [LookupState.LOADING])

    def test_newer_code_supersedes_older_fetch(self):
        self.backend.registrations["XYZ789"] = Registration(unique_code="XYZ789", qr_code_url="https://qr/x.png")
        original = self.backend.get_registration_result

        def navigate_mid_fetch(code):
            if code == "ABC123":
                self.backend.get_registration_result = original
                self.lookup.load("XYZ789")
            return original(code)

        self.backend.get_registration_result = navigate_mid_fetch
        stale = self.lookup.load("ABC123")

        self.assertEqual(stale.unique_code, "ABC123")
        self.assertEqual(self.lookup.view.unique_code, "XYZ789")

    def test_cancelled_load_keeps_loading_view(self):
        token = CancelToken()
        token.cancel()
        self.lookup.load("ABC123", cancel=token)
        self.assertEqual(self.lookup.view.state, LookupState.LOADING)


if __name__ == "__main__":
    unittest.main()
