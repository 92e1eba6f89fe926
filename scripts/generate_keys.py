"""
Genera el par de claves RSA (RS256) con el que se verifican los tokens.

    python scripts/generate_keys.py [directorio]

El servicio solo necesita la clave pública; la privada la usa quien
emite los tokens (y los tests de integración).
"""

import sys
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_rsa_keys(keys_dir: Path) -> tuple[Path, Path]:
    keys_dir.mkdir(parents=True, exist_ok=True)
    private_key_path = keys_dir / "private.pem"
    public_key_path = keys_dir / "public.pem"

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_key_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    public_key_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return private_key_path, public_key_path


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(__file__).parent.parent / "keys"
    if (target / "private.pem").exists():
        answer = input(f"Ya existen claves en {target}. ¿Regenerar? (s/N): ")
        if answer.strip().lower() != "s":
            sys.exit(0)
    private_path, public_path = generate_rsa_keys(target)
    print(f"Clave privada: {private_path}")
    print(f"Clave pública: {public_path}")
    print("Configurar JWT_PRIVATE_KEY_PATH y JWT_PUBLIC_KEY_PATH en .env")
