"""
WeCom callback cryptography

Implements the provider's published callback scheme:
- signature: SHA1 over the lexicographically sorted token/timestamp/nonce/payload
- payload: AES-256-CBC, key = base64(EncodingAESKey + "="), IV = key[:16]
- plaintext: random(16) + msg_len(4, big endian) + msg + receive_id,
  PKCS#7 padded to 32-byte blocks
"""

import base64
import hashlib
import hmac
import os
import struct
import xml.etree.ElementTree as ET
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

BLOCK_SIZE = 32


class WeComCryptoError(ValueError):
    """Signature mismatch or malformed ciphertext"""
    pass


def compute_signature(token: str, timestamp: str, nonce: str, encrypt: str) -> str:
    """
    Compute the callback signature

    Example:
        sig = compute_signature("token123", "1234567890", "random123", "encrypted_data")
    """
    raw_string = "".join(sorted([token, timestamp, nonce, encrypt]))
    return hashlib.sha1(raw_string.encode("utf-8")).hexdigest()


def verify_signature(msg_signature: str, token: str, timestamp: str, nonce: str, encrypt: str) -> bool:
    expected = compute_signature(token, timestamp, nonce, encrypt)
    return hmac.compare_digest(expected, msg_signature or "")


def _aes_key(encoding_aes_key: str) -> bytes:
    try:
        key = base64.b64decode(encoding_aes_key + "=")
    except (ValueError, TypeError) as e:
        raise WeComCryptoError(f"Invalid EncodingAESKey: {e}")
    if len(key) != 32:
        raise WeComCryptoError(f"Invalid EncodingAESKey length: {len(key)} bytes")
    return key


def _pkcs7_pad(data: bytes) -> bytes:
    pad = BLOCK_SIZE - (len(data) % BLOCK_SIZE)
    return data + bytes([pad]) * pad


def _pkcs7_unpad(data: bytes) -> bytes:
    if not data:
        raise WeComCryptoError("Empty plaintext")
    pad = data[-1]
    if pad < 1 or pad > BLOCK_SIZE or data[-pad:] != bytes([pad]) * pad:
        raise WeComCryptoError("Invalid PKCS#7 padding")
    return data[:-pad]


def decrypt_message(encrypt_str: str, encoding_aes_key: str, receive_id: str) -> str:
    """
    Decrypt a callback payload

    Args:
        encrypt_str: Base64-encoded ciphertext
        encoding_aes_key: 43-char EncodingAESKey
        receive_id: expected trailing id (corp id); skipped when empty

    Raises:
        WeComCryptoError: bad key, bad padding or receive id mismatch
    """
    key = _aes_key(encoding_aes_key)
    try:
        encrypted = base64.b64decode(encrypt_str)
    except (ValueError, TypeError) as e:
        raise WeComCryptoError(f"Invalid ciphertext encoding: {e}")
    if not encrypted or len(encrypted) % 16:
        raise WeComCryptoError("Ciphertext length is not a multiple of the AES block size")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(key[:16])).decryptor()
    plain = _pkcs7_unpad(decryptor.update(encrypted) + decryptor.finalize())

    if len(plain) < 20:
        raise WeComCryptoError("Plaintext too short")
    (msg_len,) = struct.unpack(">I", plain[16:20])
    if 20 + msg_len > len(plain):
        raise WeComCryptoError("Message length exceeds plaintext")

    msg = plain[20:20 + msg_len].decode("utf-8")
    received_id = plain[20 + msg_len:].decode("utf-8")
    if receive_id and received_id != receive_id:
        raise WeComCryptoError(f"Receive id mismatch: expected {receive_id}, got {received_id}")
    return msg


def encrypt_message(msg: str, encoding_aes_key: str, receive_id: str, random_prefix: Optional[bytes] = None) -> str:
    """Encrypt a reply payload; returns base64 ciphertext"""
    key = _aes_key(encoding_aes_key)
    msg_bytes = msg.encode("utf-8")
    prefix = random_prefix if random_prefix is not None else os.urandom(16)
    plain = prefix + struct.pack(">I", len(msg_bytes)) + msg_bytes + receive_id.encode("utf-8")

    encryptor = Cipher(algorithms.AES(key), modes.CBC(key[:16])).encryptor()
    encrypted = encryptor.update(_pkcs7_pad(plain)) + encryptor.finalize()
    return base64.b64encode(encrypted).decode("ascii")


def verify_url(msg_signature: str, timestamp: str, nonce: str, echo_str: str,
               token: str, encoding_aes_key: str, receive_id: str) -> str:
    """
    Verify the callback URL handshake

    Returns:
        decrypted echostr to write back verbatim

    Raises:
        WeComCryptoError: signature mismatch or bad ciphertext
    """
    if not verify_signature(msg_signature, token, timestamp, nonce, echo_str):
        raise WeComCryptoError("Signature verification failed")
    return decrypt_message(echo_str, encoding_aes_key, receive_id)


def parse_message(xml_content: str) -> Dict[str, Any]:
    """
    Parse a flat WeCom XML document into a dict (tag -> text)

    Example:
        parse_message("<xml><MsgType>text</MsgType><Content>Hello</Content></xml>")
        # {'MsgType': 'text', 'Content': 'Hello'}
    """
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        raise WeComCryptoError(f"Malformed XML: {e}")
    return {child.tag: child.text for child in root}


__all__ = [
    'WeComCryptoError',
    'compute_signature',
    'verify_signature',
    'decrypt_message',
    'encrypt_message',
    'verify_url',
    'parse_message',
]
