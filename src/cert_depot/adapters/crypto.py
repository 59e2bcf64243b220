"""
Crypto provider adapter — pyca/cryptography behind the CryptoProvider port.

Signature dispatch follows the algorithm family reported by asn1crypto's
SignedDigestAlgorithm: PKCS#1 v1.5, PSS (MGF1 only), DSA, ECDSA, Ed25519
and Ed448. A signature that does not match returns False; an algorithm or
key this adapter cannot handle raises.
"""

from __future__ import annotations

from asn1crypto import algos, keys
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, padding, rsa


def _hash(name: str) -> hashes.HashAlgorithm:
    return getattr(hashes, name.upper())()


def _digest(algorithm: hashes.HashAlgorithm, data: bytes) -> str:
    digest = hashes.Hash(algorithm)
    digest.update(data)
    return digest.finalize().hex()


class CryptographyProvider:
    """Implements the CryptoProvider port with pyca/cryptography."""

    def sha1(self, data: bytes) -> str:
        return _digest(hashes.SHA1(), data)

    def sha256(self, data: bytes) -> str:
        return _digest(hashes.SHA256(), data)

    def verify_signature(
        self,
        spki_der: bytes,
        message: bytes,
        signature: bytes,
        algorithm_der: bytes,
    ) -> bool:
        algorithm = algos.SignedDigestAlgorithm.load(algorithm_der)
        sig_algo = algorithm.signature_algo

        public_key_info = keys.PublicKeyInfo.load(spki_der)
        if public_key_info.algorithm == "rsassa_pss":
            # pyca/cryptography only loads PSS-restricted keys as plain RSA
            public_key_info = public_key_info.copy()
            public_key_info["algorithm"] = {"algorithm": "rsa"}
        public_key = serialization.load_der_public_key(public_key_info.dump())

        try:
            match sig_algo:
                case "rsassa_pkcs1v15" if isinstance(public_key, rsa.RSAPublicKey):
                    public_key.verify(
                        signature, message, padding.PKCS1v15(), _hash(algorithm.hash_algo)
                    )
                case "rsassa_pss" if isinstance(public_key, rsa.RSAPublicKey):
                    parameters = algorithm["parameters"]
                    mask_gen = parameters["mask_gen_algorithm"]
                    if mask_gen["algorithm"].native != "mgf1":
                        raise NotImplementedError("Only MGF1 is supported for RSASSA-PSS")
                    pss = padding.PSS(
                        mgf=padding.MGF1(_hash(mask_gen["parameters"]["algorithm"].native)),
                        salt_length=parameters["salt_length"].native,
                    )
                    public_key.verify(signature, message, pss, _hash(algorithm.hash_algo))
                case "dsa" if isinstance(public_key, dsa.DSAPublicKey):
                    public_key.verify(signature, message, _hash(algorithm.hash_algo))
                case "ecdsa" if isinstance(public_key, ec.EllipticCurvePublicKey):
                    public_key.verify(signature, message, ec.ECDSA(_hash(algorithm.hash_algo)))
                case "ed25519" if isinstance(public_key, ed25519.Ed25519PublicKey):
                    public_key.verify(signature, message)
                case "ed448" if isinstance(public_key, ed448.Ed448PublicKey):
                    public_key.verify(signature, message)
                case _:
                    raise NotImplementedError(
                        f"Signature mechanism {sig_algo} does not apply to "
                        f"{type(public_key).__name__}"
                    )
        except InvalidSignature:
            return False
        return True
