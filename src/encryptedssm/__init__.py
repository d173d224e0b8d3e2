"""encryptedssm: manage KMS-encrypted SSM parameters declaratively."""

__version__ = "0.1.0"
