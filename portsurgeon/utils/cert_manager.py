# portsurgeon/utils/cert_manager.py
import os
import datetime
from typing import Tuple
from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization
from portsurgeon.utils.logger import Logger


class CertManager:
    """
    Self-signed TLS identity for the local API.
    Generates a localhost certificate on first use and reuses it afterwards.
    """

    def __init__(self, cert_dir: str = "certs", valid_days: int = 365):
        self.logger = Logger()
        self.cert_dir = os.path.abspath(cert_dir)
        self.cert_path = os.path.join(self.cert_dir, "portsurgeon_cert.pem")
        self.key_path = os.path.join(self.cert_dir, "portsurgeon_key.pem")
        self.valid_days = valid_days

    def ensure_certificates(self) -> Tuple[str, str]:
        """Returns (cert_path, key_path), generating the pair if either file is missing."""
        os.makedirs(self.cert_dir, exist_ok=True)

        if not os.path.exists(self.cert_path) or not os.path.exists(self.key_path):
            self.logger.warning("TLS certificate missing. Generating a self-signed localhost identity...")
            self._generate_self_signed_cert()
        else:
            self.logger.info(f"TLS certificate found in {self.cert_dir}")

        return self.cert_path, self.key_path

    def _generate_self_signed_cert(self) -> None:
        key = ec.generate_private_key(ec.SECP256R1())

        subject = issuer = x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "PortSurgeon"),
            x509.NameAttribute(NameOID.COMMON_NAME, "localhost"),
        ])

        now = datetime.datetime.now(datetime.timezone.utc)
        cert = x509.CertificateBuilder().subject_name(
            subject
        ).issuer_name(
            issuer
        ).public_key(
            key.public_key()
        ).serial_number(
            x509.random_serial_number()
        ).not_valid_before(
            now
        ).not_valid_after(
            now + datetime.timedelta(days=self.valid_days)
        ).add_extension(
            x509.SubjectAlternativeName([x509.DNSName("localhost")]),
            critical=False,
        ).sign(key, hashes.SHA256())

        with open(self.key_path, "wb") as f:
            f.write(key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ))
        os.chmod(self.key_path, 0o600)

        with open(self.cert_path, "wb") as f:
            f.write(cert.public_bytes(serialization.Encoding.PEM))

        self.logger.success(f"New TLS identity generated at: {self.cert_dir}")
