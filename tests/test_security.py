from gateway.common.security import (
    generate_client_id,
    hash_secret,
    pkce_challenge,
    verify_pkce,
    verify_secret,
)
from oauth_helpers import make_pkce_pair


class TestPkce:
    def test_rfc7636_vector(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert pkce_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuxJWyVFbAM"

    def test_generated_pair_verifies(self):
        verifier, challenge = make_pkce_pair()
        assert verify_pkce(verifier, challenge)

    def test_wrong_verifier_rejected(self):
        _, challenge = make_pkce_pair()
        other, _ = make_pkce_pair()
        assert not verify_pkce(other, challenge)

    def test_non_ascii_verifier_rejected(self):
        _, challenge = make_pkce_pair()
        assert not verify_pkce("vérifier", challenge)


class TestSecrets:
    def test_hash_is_not_plaintext_and_verifies(self):
        hashed = hash_secret("s3cret")
        assert hashed != "s3cret"
        assert hashed.startswith("$pbkdf2-sha256$")
        assert verify_secret("s3cret", hashed)
        assert not verify_secret("nope", hashed)

    def test_empty_inputs_never_verify(self):
        assert not verify_secret("", hash_secret("x"))
        assert not verify_secret("x", None)
        assert not verify_secret("x", "not-a-hash")

    def test_client_id_shape(self):
        client_id = generate_client_id()
        assert client_id.startswith("gw_")
        assert len(client_id) == 3 + 32
