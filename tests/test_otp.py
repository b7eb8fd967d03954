#!/usr/bin/env python3
"""
Unit tests for OTP provisioning, derivation and verification.
"""

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from otpkit.auth import otp
from otpkit.auth.credential import Credential, HashAlgorithm, OTPMode
from otpkit.auth.errors import CodeMismatch, EntropyUnavailable, InvalidParameter
from otpkit.auth.otp import (
    create_new_credential,
    current_code,
    derive_code,
    drift_offsets,
    provision,
    time_remaining,
    time_step,
    verify,
)

# RFC 4226 / RFC 6238 reference secrets
RFC_SHA1_SECRET = b"12345678901234567890"
RFC_SHA256_SECRET = b"12345678901234567890123456789012"
RFC_SHA512_SECRET = b"1234567890" * 6 + b"1234"

# RFC 4226 Appendix D
RFC4226_CODES = [
    "755224", "287082", "359152", "969429", "338314",
    "254676", "287922", "162583", "399871", "520489",
]


def totp_credential(secret=RFC_SHA1_SECRET, digits=6, algorithm=HashAlgorithm.SHA1):
    return Credential(secret_key=secret, mode=OTPMode.TIME_BASED, digits=digits, algorithm=algorithm)


def hotp_credential(counter=0):
    return Credential(secret_key=RFC_SHA1_SECRET, mode=OTPMode.COUNTER_BASED, counter=counter)


class TestProvision(unittest.TestCase):
    """Test cases for provision()."""

    def test_generates_160_bit_secret(self):
        """Test a generated secret is 20 bytes."""
        credential = provision()
        self.assertEqual(len(credential.secret_key), 20)
        self.assertEqual(len(credential.secret_base32), 32)

    def test_defaults(self):
        """Test default mode, digits, period and algorithm."""
        credential = provision()
        self.assertEqual(credential.mode, OTPMode.TIME_BASED)
        self.assertEqual(credential.digits, 6)
        self.assertEqual(credential.period, 30)
        self.assertEqual(credential.algorithm, HashAlgorithm.SHA1)
        self.assertEqual(credential.counter, 0)

    def test_counter_based_starts_at_zero(self):
        credential = provision(OTPMode.COUNTER_BASED, digits=8)
        self.assertEqual(credential.mode, OTPMode.COUNTER_BASED)
        self.assertEqual(credential.counter, 0)
        self.assertEqual(credential.digits, 8)

    def test_mode_and_algorithm_strings(self):
        credential = provision("hotp", algorithm="SHA-256")
        self.assertEqual(credential.mode, OTPMode.COUNTER_BASED)
        self.assertEqual(credential.algorithm, HashAlgorithm.SHA256)

    def test_secrets_are_unique(self):
        """Test that two provisioned secrets differ."""
        self.assertNotEqual(provision().secret_key, provision().secret_key)

    def test_caller_supplied_secret(self):
        """Test provisioning with an explicit secret skips generation."""
        with patch.object(otp.pyotp, 'random_base32') as mock_random:
            credential = provision(secret_key="JBSWY3DPEHPK3PXP")

        mock_random.assert_not_called()
        self.assertEqual(credential.secret_key, b"Hello!\xde\xad\xbe\xef")

    def test_caller_supplied_bytes(self):
        credential = provision(secret_key=RFC_SHA1_SECRET)
        self.assertEqual(credential.secret_key, RFC_SHA1_SECRET)

    def test_invalid_digits(self):
        for digits in (0, 5, 7, 9, "6"):
            with self.assertRaises(InvalidParameter):
                provision(digits=digits)

    def test_invalid_period(self):
        for period in (0, -30, 1.5):
            with self.assertRaises(InvalidParameter):
                provision(period=period)

    def test_invalid_secret(self):
        with self.assertRaises(InvalidParameter):
            provision(secret_key="not base32!")
        with self.assertRaises(InvalidParameter):
            provision(secret_key="")

    def test_parameters_checked_before_entropy_draw(self):
        with patch.object(otp.pyotp, 'random_base32') as mock_random:
            with self.assertRaises(InvalidParameter):
                provision(digits=7)
        mock_random.assert_not_called()

    def test_entropy_unavailable(self):
        """Test a failing random source raises EntropyUnavailable."""
        with patch.object(otp.pyotp, 'random_base32', side_effect=OSError("getrandom failed")):
            with self.assertRaises(EntropyUnavailable):
                provision()

        with patch.object(otp.pyotp, 'random_base32', side_effect=NotImplementedError):
            with self.assertRaises(EntropyUnavailable):
                provision()


class TestCreateNewCredential(unittest.TestCase):
    """Test cases for create_new_credential()."""

    def test_returns_credential_and_codes(self):
        credential, codes = create_new_credential()
        self.assertIsInstance(credential, Credential)
        self.assertIsInstance(codes, set)
        self.assertEqual(len(codes), 10)

    def test_passes_options_through(self):
        credential, codes = create_new_credential(OTPMode.COUNTER_BASED, recovery_count=4, digits=8)
        self.assertEqual(credential.mode, OTPMode.COUNTER_BASED)
        self.assertEqual(credential.digits, 8)
        self.assertEqual(len(codes), 4)


class TestDeriveCode(unittest.TestCase):
    """Test cases for derive_code()."""

    def test_rfc4226_vectors(self):
        """Test HOTP values from RFC 4226 Appendix D."""
        credential = hotp_credential()
        for counter, expected in enumerate(RFC4226_CODES):
            self.assertEqual(derive_code(credential, counter), expected)

    def test_rfc6238_sha1_vectors(self):
        credential = totp_credential(digits=8)
        vectors = {59: "94287082", 1111111109: "07081804", 1234567890: "89005924", 2000000000: "69279037"}
        for timestamp, expected in vectors.items():
            self.assertEqual(derive_code(credential, time_step(credential, timestamp)), expected)

    def test_rfc6238_sha256_vectors(self):
        credential = totp_credential(RFC_SHA256_SECRET, 8, HashAlgorithm.SHA256)
        vectors = {59: "46119246", 1111111109: "68084774", 1234567890: "91819424", 2000000000: "90698825"}
        for timestamp, expected in vectors.items():
            self.assertEqual(derive_code(credential, time_step(credential, timestamp)), expected)

    def test_rfc6238_sha512_vectors(self):
        credential = totp_credential(RFC_SHA512_SECRET, 8, HashAlgorithm.SHA512)
        vectors = {59: "90693936", 1111111109: "25091201", 1234567890: "93441116", 2000000000: "38618901"}
        for timestamp, expected in vectors.items():
            self.assertEqual(derive_code(credential, time_step(credential, timestamp)), expected)

    def test_rfc6238_six_digit_value(self):
        """Test the 6-digit form of the t=59 SHA-1 vector."""
        credential = totp_credential()
        self.assertEqual(derive_code(credential, time_step(credential, 59)), "287082")

    def test_length_and_charset(self):
        """Test every code has exactly `digits` decimal characters."""
        for digits in (6, 8):
            credential = provision(digits=digits)
            for moving_factor in range(50):
                code = derive_code(credential, moving_factor)
                self.assertEqual(len(code), digits)
                self.assertTrue(code.isdigit())

    def test_deterministic(self):
        credential = provision()
        self.assertEqual(derive_code(credential, 12345), derive_code(credential, 12345))

    def test_negative_moving_factor(self):
        with self.assertRaises(InvalidParameter):
            derive_code(hotp_credential(), -1)

    def test_moving_factor_upper_bound(self):
        """Test moving factors wider than 8 bytes are rejected."""
        self.assertEqual(len(derive_code(hotp_credential(), 2 ** 64 - 1)), 6)
        with self.assertRaises(InvalidParameter):
            derive_code(hotp_credential(), 2 ** 64)


class TestTimeHelpers(unittest.TestCase):
    """Test cases for time_step(), time_remaining() and current_code()."""

    def test_time_step(self):
        credential = totp_credential()
        self.assertEqual(time_step(credential, 0), 0)
        self.assertEqual(time_step(credential, 29.9), 0)
        self.assertEqual(time_step(credential, 30), 1)
        self.assertEqual(time_step(credential, 59), 1)

    def test_time_step_accepts_datetime(self):
        credential = totp_credential()
        moment = datetime.fromtimestamp(59, tz=timezone.utc)
        self.assertEqual(time_step(credential, moment), 1)

    def test_time_remaining(self):
        credential = totp_credential()
        self.assertEqual(time_remaining(credential, 0), 30)
        self.assertEqual(time_remaining(credential, 59), 1)
        self.assertEqual(time_remaining(credential, 45), 15)

    def test_time_remaining_now(self):
        remaining = time_remaining(totp_credential())
        self.assertGreaterEqual(remaining, 1)
        self.assertLessEqual(remaining, 30)

    def test_current_code_time_based(self):
        self.assertEqual(current_code(totp_credential(), 59), "287082")

    def test_current_code_counter_based(self):
        self.assertEqual(current_code(hotp_credential(counter=3)), RFC4226_CODES[3])


class TestVerifyTimeBased(unittest.TestCase):
    """Test cases for verify() with time-based credentials."""

    def setUp(self):
        self.credential = totp_credential()

    def test_known_vector_accepted(self):
        result = verify(self.credential, "287082", at=59)
        self.assertTrue(result.accepted)
        self.assertEqual(result.matched_offset, 0)
        self.assertIsNone(result.error)

    def test_known_vector_rejected_two_steps_later(self):
        result = verify(self.credential, "287082", at=120)
        self.assertFalse(result.accepted)
        self.assertIsInstance(result.error, CodeMismatch)
        self.assertIsNone(result.matched_offset)

    def test_one_step_drift_tolerated(self):
        """Test a code for step t is accepted at t-1 and t+1."""
        self.assertEqual(verify(self.credential, "287082", at=89).matched_offset, -1)
        self.assertEqual(verify(self.credential, "287082", at=10).matched_offset, 1)

    def test_two_step_drift_rejected(self):
        self.assertFalse(verify(self.credential, "287082", at=90).accepted)

    def test_wider_window(self):
        result = verify(self.credential, "287082", at=90, window=2)
        self.assertTrue(result.accepted)
        self.assertEqual(result.matched_offset, -2)

    def test_window_is_clamped(self):
        # Step 1 is 10 steps behind; the window is capped at 5
        self.assertFalse(verify(self.credential, "287082", at=11 * 30, window=50).accepted)

    def test_zero_window(self):
        self.assertFalse(verify(self.credential, "287082", at=89, window=0).accepted)
        self.assertTrue(verify(self.credential, "287082", at=59, window=0).accepted)

    def test_credential_unchanged(self):
        """Test time-based matches never alter the credential."""
        result = verify(self.credential, "287082", at=89)
        self.assertIs(result.updated_credential, self.credential)

    def test_offset_order_prefers_current_step(self):
        with patch.object(otp, 'derive_code', return_value="111111"):
            result = verify(self.credential, "111111", at=300)
        self.assertEqual(result.matched_offset, 0)

    def test_offset_order_prefers_past_over_future(self):
        step = time_step(self.credential, 300)

        def fake_derive(credential, moving_factor):
            return "111111" if moving_factor in (step - 1, step + 1) else "000000"

        with patch.object(otp, 'derive_code', side_effect=fake_derive):
            result = verify(self.credential, "111111", at=300)
        self.assertEqual(result.matched_offset, -1)

    def test_negative_steps_skipped(self):
        # At step 0 only offsets 0 and +1 are possible
        self.assertTrue(verify(self.credential, "755224", at=0).accepted)
        self.assertTrue(verify(self.credential, "287082", at=0).accepted)

    def test_self_consistency(self):
        """Test a freshly derived code always verifies."""
        for digits in (6, 8):
            for algorithm in HashAlgorithm:
                credential = provision(digits=digits, algorithm=algorithm)
                code = current_code(credential, 1700000000)
                self.assertTrue(verify(credential, code, at=1700000000).accepted)

    def test_verify_now(self):
        credential = provision()
        self.assertTrue(verify(credential, current_code(credential)).accepted)

    def test_code_with_spaces_and_dashes(self):
        self.assertTrue(verify(self.credential, "287 082", at=59).accepted)
        self.assertTrue(verify(self.credential, "287-082", at=59).accepted)

    def test_wrong_format(self):
        """Test malformed codes are rejected, not raised."""
        for code in ("28708", "2870822", "28708a", "", None, 287082):
            result = verify(self.credential, code, at=59)
            self.assertFalse(result.accepted)
            self.assertIsInstance(result.error, CodeMismatch)

    def test_non_integer_window(self):
        with self.assertRaises(InvalidParameter):
            verify(self.credential, "287082", at=59, window="1")

    def test_result_truthiness(self):
        self.assertTrue(verify(self.credential, "287082", at=59))
        self.assertFalse(verify(self.credential, "000000", at=59))

    def test_raise_for_error(self):
        verify(self.credential, "287082", at=59).raise_for_error()
        with self.assertRaises(CodeMismatch):
            verify(self.credential, "287082", at=120).raise_for_error()


class TestVerifyCounterBased(unittest.TestCase):
    """Test cases for verify() with counter-based credentials."""

    def test_match_advances_counter(self):
        result = verify(hotp_credential(), RFC4226_CODES[0])
        self.assertTrue(result.accepted)
        self.assertEqual(result.matched_offset, 0)
        self.assertEqual(result.updated_credential.counter, 1)

    def test_lookahead_window(self):
        """Test codes up to three counters ahead are accepted."""
        result = verify(hotp_credential(), RFC4226_CODES[3])
        self.assertTrue(result.accepted)
        self.assertEqual(result.matched_offset, 3)
        self.assertEqual(result.updated_credential.counter, 4)

    def test_beyond_lookahead_rejected(self):
        result = verify(hotp_credential(), RFC4226_CODES[4])
        self.assertFalse(result.accepted)
        self.assertEqual(result.updated_credential.counter, 0)

    def test_custom_lookahead(self):
        result = verify(hotp_credential(), RFC4226_CODES[6], window=6)
        self.assertTrue(result.accepted)
        self.assertEqual(result.updated_credential.counter, 7)

    def test_last_counter_value_not_accepted(self):
        credential = hotp_credential(counter=2 ** 64 - 1)
        result = verify(credential, derive_code(credential, 2 ** 64 - 1))
        self.assertFalse(result.accepted)
        self.assertEqual(result.updated_credential, credential)

    def test_replay_rejected(self):
        """Test a consumed counter value can never be replayed."""
        first = verify(hotp_credential(), RFC4226_CODES[2])
        self.assertTrue(first.accepted)

        replay = verify(first.updated_credential, RFC4226_CODES[2])
        self.assertFalse(replay.accepted)
        self.assertIsInstance(replay.error, CodeMismatch)

    def test_earlier_codes_rejected_after_skip(self):
        credential = verify(hotp_credential(), RFC4226_CODES[2]).updated_credential
        for code in RFC4226_CODES[:3]:
            self.assertFalse(verify(credential, code).accepted)

    def test_counter_monotonic(self):
        credential = hotp_credential()
        for counter, code in enumerate(RFC4226_CODES):
            result = verify(credential, code)
            self.assertTrue(result.accepted)
            self.assertGreater(result.updated_credential.counter, credential.counter)
            credential = result.updated_credential
        self.assertEqual(credential.counter, len(RFC4226_CODES))

    def test_at_is_ignored(self):
        self.assertTrue(verify(hotp_credential(), RFC4226_CODES[0], at=10 ** 9).accepted)

    def test_first_match_wins(self):
        with patch.object(otp, 'derive_code', return_value="111111"):
            result = verify(hotp_credential(counter=5), "111111")
        self.assertEqual(result.matched_offset, 0)
        self.assertEqual(result.updated_credential.counter, 6)


class TestDriftOffsets(unittest.TestCase):

    def test_order(self):
        self.assertEqual(list(drift_offsets(0)), [0])
        self.assertEqual(list(drift_offsets(1)), [0, -1, 1])
        self.assertEqual(list(drift_offsets(2)), [0, -1, 1, -2, 2])


if __name__ == '__main__':
    unittest.main()
