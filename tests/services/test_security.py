import base64
import hashlib
import math
import string

import pytest

from oauth2_strategy.models.errors import StateGenerationError
from oauth2_strategy.models.security import PKCEParameters, derive_code_challenge
from oauth2_strategy.services import security
from oauth2_strategy.services.security import (
    StateGenerator,
    states_match,
    verify_code_challenge,
)

UNRESERVED = set(string.ascii_letters + string.digits + "-._~")


class TestStateGenerator:
    def test_generate_meets_pkce_requirements(self) -> None:
        # Arrange
        generator = StateGenerator()

        # Act
        attempt = generator.generate()

        # Assert RFC 7636 requirements
        assert 43 <= len(attempt.code_verifier) <= 128
        assert set(attempt.code_verifier) <= UNRESERVED

        # Verify code_challenge is base64url(sha256(code_verifier))
        expected_challenge = (
            base64.urlsafe_b64encode(
                hashlib.sha256(attempt.code_verifier.encode("ascii")).digest()
            )
            .decode("ascii")
            .rstrip("=")
        )
        assert attempt.code_challenge == expected_challenge
        assert "=" not in attempt.code_challenge

    def test_state_and_verifier_are_independent(self) -> None:
        # Arrange
        generator = StateGenerator()

        # Act
        attempt = generator.generate()

        # Assert
        assert attempt.state != attempt.code_verifier
        assert attempt.state not in attempt.code_verifier
        assert attempt.state != attempt.code_challenge

    def test_no_collisions_across_ten_thousand_generations(self) -> None:
        # Arrange
        generator = StateGenerator()

        # Act
        attempts = [generator.generate() for _ in range(10_000)]

        # Assert
        assert len({a.state for a in attempts}) == 10_000
        assert len({a.code_verifier for a in attempts}) == 10_000

    def test_minimum_entropy(self) -> None:
        # Arrange
        generator = StateGenerator()

        # Act
        attempts = [generator.generate() for _ in range(10_000)]

        # Assert - state decodes to at least 128 bits of random data
        for attempt in attempts[:100]:
            padding = "=" * (-len(attempt.state) % 4)
            raw = base64.urlsafe_b64decode(attempt.state + padding)
            assert len(raw) * 8 >= 128

        # Verifier length times bits per symbol clears 128 bits
        verifier_bits = len(attempts[0].code_verifier) * math.log2(len(UNRESERVED))
        assert verifier_bits >= 128

        # Every symbol of the alphabet is actually used
        used = set().union(*(set(a.code_verifier) for a in attempts))
        assert used == UNRESERVED

    def test_generate_uses_clock_for_created_at(self, clock) -> None:
        # Arrange
        generator = StateGenerator(clock=clock)

        # Act
        attempt = generator.generate()

        # Assert
        assert attempt.created_at == clock.now

    def test_missing_random_source_is_fatal(self, monkeypatch) -> None:
        # Arrange
        def no_entropy() -> str:
            raise NotImplementedError("no urandom")

        monkeypatch.setattr(security, "generate_state", no_entropy)
        generator = StateGenerator()

        # Act & Assert
        with pytest.raises(StateGenerationError):
            generator.generate()


class TestStatesMatch:
    def test_identical_states_match(self) -> None:
        assert states_match("abc-123", "abc-123")

    def test_different_states_do_not_match(self) -> None:
        assert not states_match("abc-123", "abc-124")

    def test_missing_values_never_match(self) -> None:
        assert not states_match(None, None)
        assert not states_match("abc", None)
        assert not states_match(None, "abc")
        assert not states_match("", "")

    def test_non_ascii_state_does_not_raise(self) -> None:
        assert not states_match("abc", "äbc")


class TestCodeChallenge:
    def test_rfc7636_appendix_b_vector(self) -> None:
        # Arrange
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        # Act
        challenge = derive_code_challenge(verifier)

        # Assert
        assert challenge == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        assert verify_code_challenge(verifier, challenge)
        assert not verify_code_challenge(verifier + "x", challenge)

    def test_pkce_parameters_reject_short_verifier(self) -> None:
        with pytest.raises(ValueError):
            PKCEParameters.from_verifier("too-short")

    def test_pkce_parameters_reject_reserved_characters(self) -> None:
        with pytest.raises(ValueError):
            PKCEParameters.from_verifier("a" * 42 + "/")

    def test_pkce_parameters_from_attempt(self) -> None:
        # Arrange
        attempt = StateGenerator().generate()

        # Act
        pkce = attempt.pkce

        # Assert
        assert pkce.code_challenge == attempt.code_challenge
        assert pkce.code_challenge_method == "S256"
