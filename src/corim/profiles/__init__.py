"""Built-in profiles.

Importing this package registers the PSA, CCA platform, CCA realm and TDX
profiles with :mod:`corim.profile`.
"""

from . import cca, psa, tdx

__all__ = ["cca", "psa", "tdx"]
