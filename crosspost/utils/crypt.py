import os
import base64
import json
import hashlib
import hmac

from cryptography.hazmat.primitives.ciphers.aead import AESGCM


def _key_passphrase() -> bytes:
    passphrase = os.getenv("SECRET_KEY")
    if not passphrase:
        raise ValueError("SECRET_KEY is not set in the environment!")
    return passphrase.encode()


def _aes_key() -> bytes:
    # AES-256 needs exactly 32 bytes; derive them so short secrets still work
    return hashlib.sha256(_key_passphrase()).digest()


def encrypt_data(data):
    """AES-GCM encrypt any JSON-serialisable value into a base64 string."""
    aesgcm = AESGCM(_aes_key())
    nonce = os.urandom(12)  # 96 bits is standard for GCM
    encrypted = aesgcm.encrypt(nonce, json.dumps(data).encode(), None)
    return base64.b64encode(nonce + encrypted).decode()


def decrypt_data(encrypted_data):
    raw = base64.b64decode(encrypted_data)
    nonce, ciphertext = raw[:12], raw[12:]
    decrypted = AESGCM(_aes_key()).decrypt(nonce, ciphertext, None)
    return json.loads(decrypted.decode())


def hash_data(data):
    """HMAC-SHA256 of a value, for lookups on encrypted fields."""
    return hmac.new(_key_passphrase(), data.encode(), hashlib.sha256).hexdigest()
