"""RSA keypair issuance and the envelope scheme built on it.

The server generates each device keypair and keeps the private half. The
device wraps a locally chosen symmetric key under the public half and sends
back only the ciphertext, which the retained private key can open again:

    wrapped = wrap_key(public_pem, aes_key)      # on the device
    unwrap_key(private_pem, wrapped) == aes_key  # on the server
"""

import base64
import binascii
import math

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from keyescrow.core.errors import EncodingError, KeyGenerationError

KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537

PEM_CONTENT_TYPE = "application/x-pem-file"


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class KeyProvisioner:
    """Generates and encodes device keypairs."""

    def __init__(self, key_size: int = KEY_SIZE) -> None:
        self.key_size = key_size

    def generate_key_pair(self) -> rsa.RSAPrivateKey:
        """
        Generate a fresh RSA keypair.

        Raises:
            KeyGenerationError: If generation fails or the key does not pass
                structural validation
        """
        try:
            key = rsa.generate_private_key(
                public_exponent=PUBLIC_EXPONENT,
                key_size=self.key_size,
            )
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyGenerationError(f"RSA generation failed: {e}") from e

        self.validate(key)
        return key

    def validate(self, key: rsa.RSAPrivateKey) -> None:
        """Check modulus size and private/public consistency."""
        if key.key_size != self.key_size:
            raise KeyGenerationError(
                f"expected {self.key_size}-bit modulus, got {key.key_size}"
            )

        priv = key.private_numbers()
        pub = priv.public_numbers
        if pub.e != PUBLIC_EXPONENT:
            raise KeyGenerationError("unexpected public exponent")
        if priv.p * priv.q != pub.n:
            raise KeyGenerationError("modulus does not match prime factors")
        if (priv.d * pub.e - 1) % math.lcm(priv.p - 1, priv.q - 1) != 0:
            raise KeyGenerationError("private exponent does not invert public exponent")

    def encode_public(self, key: rsa.RSAPrivateKey | rsa.RSAPublicKey) -> str:
        """PEM ``PUBLIC KEY`` block (SubjectPublicKeyInfo)."""
        public_key = key.public_key() if isinstance(key, rsa.RSAPrivateKey) else key
        try:
            pem = public_key.public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        except (ValueError, TypeError) as e:
            raise EncodingError(f"public key encoding failed: {e}") from e
        return pem.decode("ascii")

    def encode_private(self, key: rsa.RSAPrivateKey) -> str:
        """PEM ``RSA PRIVATE KEY`` block (PKCS#1, unencrypted)."""
        try:
            pem = key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
        except (ValueError, TypeError) as e:
            raise EncodingError(f"private key encoding failed: {e}") from e
        return pem.decode("ascii")


def load_public_key(public_pem: str) -> rsa.RSAPublicKey:
    """Parse a PEM public key, rejecting anything that is not RSA."""
    try:
        key = serialization.load_pem_public_key(public_pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError, UnsupportedAlgorithm) as e:
        raise EncodingError(f"invalid public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise EncodingError("public key is not an RSA key")
    return key


def load_private_key(private_pem: str) -> rsa.RSAPrivateKey:
    """Parse an unencrypted PEM private key, rejecting anything that is not RSA."""
    try:
        key = serialization.load_pem_private_key(private_pem.encode("ascii"), password=None)
    except (ValueError, TypeError, UnicodeEncodeError, UnsupportedAlgorithm) as e:
        raise EncodingError(f"invalid private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise EncodingError("private key is not an RSA key")
    return key


def wrap_key(public_pem: str, key: bytes) -> str:
    """Encrypt ``key`` under ``public_pem`` with RSA-OAEP; base64 result."""
    public_key = load_public_key(public_pem)
    try:
        ciphertext = public_key.encrypt(key, _oaep())
    except ValueError as e:
        raise EncodingError(f"key wrap failed: {e}") from e
    return base64.b64encode(ciphertext).decode("ascii")


def unwrap_key(private_pem: str, wrapped: str) -> bytes:
    """Recover the symmetric key from a base64 RSA-OAEP ciphertext."""
    private_key = load_private_key(private_pem)
    try:
        ciphertext = base64.b64decode(wrapped, validate=True)
    except binascii.Error as e:
        raise EncodingError(f"wrapped key is not base64: {e}") from e
    try:
        return private_key.decrypt(ciphertext, _oaep())
    except ValueError as e:
        raise EncodingError(f"key unwrap failed: {e}") from e
