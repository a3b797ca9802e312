from unittest import mock

from botocore.exceptions import ClientError, EndpointConnectionError
from django.test import SimpleTestCase

from provisioner.errors import (
    AlreadyExistsError,
    NotFoundError,
    PollTimeoutError,
    ProviderError,
    classify_provider_error,
)
from provisioner.polling import poll, unique_suffix


class PollTests(SimpleTestCase):
    def test_returns_first_result_and_sleeps_between_attempts(self):
        sleep = mock.Mock()
        check = mock.Mock(side_effect=[None, None, "done"])
        self.assertEqual(poll(check, delay=5, attempts=10, sleep=sleep), "done")
        self.assertEqual(check.call_args_list, [mock.call(1), mock.call(2), mock.call(3)])
        self.assertEqual(sleep.call_args_list, [mock.call(5), mock.call(5)])

    def test_exhaustion_raises_timeout(self):
        sleep = mock.Mock()
        with self.assertRaises(PollTimeoutError) as ctx:
            poll(lambda attempt: None, delay=1, attempts=3, description="widget", sleep=sleep)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIn("widget", str(ctx.exception))
        self.assertEqual(sleep.call_count, 2)

    def test_check_errors_propagate(self):
        def check(attempt):
            raise ProviderError("boom")

        with self.assertRaises(ProviderError):
            poll(check, delay=1, attempts=3, sleep=mock.Mock())

    def test_unique_suffix_differs_between_calls(self):
        self.assertNotEqual(unique_suffix(), unique_suffix())


class ClassifyProviderErrorTests(SimpleTestCase):
    def _client_error(self, code):
        return ClientError({"Error": {"Code": code, "Message": "original message"}}, "Operation")

    def test_not_found_codes(self):
        for code in ("InvalidVpcID.NotFound", "InvalidInstanceID.NotFound", "NoSuchKey"):
            error = classify_provider_error(self._client_error(code), "lookup")
            self.assertIsInstance(error, NotFoundError)
            self.assertEqual(error.code, code)

    def test_duplicate_codes(self):
        self.assertIsInstance(
            classify_provider_error(self._client_error("InvalidGroup.Duplicate")), AlreadyExistsError
        )
        self.assertIsInstance(
            classify_provider_error(self._client_error("EntityAlreadyExists")), AlreadyExistsError
        )

    def test_other_codes_keep_original_message(self):
        error = classify_provider_error(self._client_error("Throttling"), "describe")
        self.assertIsInstance(error, ProviderError)
        self.assertTrue(str(error).startswith("describe: "))
        self.assertIn("original message", str(error))

    def test_botocore_errors_are_provider_errors(self):
        error = classify_provider_error(EndpointConnectionError(endpoint_url="https://ec2.example"))
        self.assertIsInstance(error, ProviderError)
        self.assertIsNone(error.code)

    def test_taxonomy_errors_pass_through(self):
        original = NotFoundError("already classified")
        self.assertIs(classify_provider_error(original, "ignored"), original)
