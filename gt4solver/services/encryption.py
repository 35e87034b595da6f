"""Submission encryption: percent-encoding or AES-128-CBC + RSA (pt=1)."""
import secrets
from urllib.parse import quote

from Crypto.Cipher import AES, PKCS1_v1_5
from Crypto.PublicKey import RSA
from Crypto.Util.Padding import pad

from gt4solver.errors import EncryptionModeError

# Vendor-issued 1024-bit public key
RSA_MODULUS_HEX = (
    "00C1E3934D1614465B33053E7F48EE4EC87B14B95EF88947713D25EECBFF7E74C7977D02DC1D9451F79DD5D1C10C29ACB6A9B4D6FB7D0A0279B6719E1772565F09AF627715919221AEF91899CAE08C0D686D748B20A3603BE2318CA6BC2B59706592A9219D0BF05C9F65023A21D2330807252AE0066D59CEEFA5F2748EA80BAB81"
)
RSA_EXPONENT = 0x10001

# The RSA part of a pt=1 submission is not length-prefixed; it is always the
# last 256 hex chars because the modulus is 1024 bits.
RSA_CIPHERTEXT_HEX_LEN = 256

# The vendor script parses the IV from the UTF-8 string "0000000000000000"
AES_IV = b"0" * 16

_PUBLIC_KEY = RSA.construct((int(RSA_MODULUS_HEX, 16), RSA_EXPONENT))


def random_uid() -> str:
    """16 hex chars as four 0x1000-0xffff groups, the vendor's key/nonce format."""
    return "".join(f"{0x1000 + secrets.randbelow(0xF000):04x}" for _ in range(4))


def aes_encrypt(plaintext: str, key: str) -> bytes:
    cipher = AES.new(key.encode(), AES.MODE_CBC, iv=AES_IV)
    return cipher.encrypt(pad(plaintext.encode(), AES.block_size))


def rsa_encrypt(message: str) -> str:
    return PKCS1_v1_5.new(_PUBLIC_KEY).encrypt(message.encode()).hex()


def encrypt(plaintext: str, protocol_type: str) -> str:
    """
    Encrypt a serialized payload under the server-selected mode.

    "" / "0": percent-encoding only.
    "1": hex(AES ciphertext) followed by hex(RSA-encrypted session key).
    "2": the vendor's SM2 mode, not supported.
    """
    if protocol_type in ("", "0"):
        return quote(plaintext, safe="")

    if protocol_type == "1":
        session_key = random_uid()
        return aes_encrypt(plaintext, session_key).hex() + rsa_encrypt(session_key)

    if protocol_type == "2":
        raise EncryptionModeError("unsupported encryption mode: 2 (SM2)")

    raise EncryptionModeError(f"Unknown encryption type: {protocol_type}")


def split_submission(w: str) -> tuple[str, str]:
    """Split a pt=1 submission into its (AES hex, RSA hex) parts."""
    if len(w) < RSA_CIPHERTEXT_HEX_LEN:
        raise ValueError("submission shorter than the RSA block")
    return w[:-RSA_CIPHERTEXT_HEX_LEN], w[-RSA_CIPHERTEXT_HEX_LEN:]
