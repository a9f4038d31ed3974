# -*- coding: utf-8 -*-
"""
GreenLedger Digital Signatures

SHA-256 signing of report documents with role-based signing authority,
verification and revocation.

Author: GreenLang Platform Team
Date: March 2026
"""

from greenledger.signatures.service import DEFAULT_REVOCATION_REASON, SignatureService

__all__ = ["DEFAULT_REVOCATION_REASON", "SignatureService"]
