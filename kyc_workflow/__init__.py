"""KYC verification workflow engine."""
