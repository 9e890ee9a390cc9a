#!/usr/bin/env python3
"""
Generate a VAPID key pair for Web Push and print the .env lines.
Run: cd backend && python scripts/generate_vapid_keys.py
"""
import base64

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


def main():
    private_key = ec.generate_private_key(ec.SECP256R1())
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    # Browsers want the uncompressed public point, base64url without padding
    point = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    print(f"VAPID_PUBLIC_KEY={base64.urlsafe_b64encode(point).rstrip(b'=').decode()}")
    print(f"VAPID_PRIVATE_KEY={base64.b64encode(pem).decode()}")


if __name__ == "__main__":
    main()
