"""credvault Meta information.
   credvault keeps structured credentials encrypted at rest behind a master password.
"""
__title__ = 'credvault'
__description__ = (
   'Encrypted local credential store with master-password key derivation, '
   'key rotation and plaintext migration.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2026 credvault developers'
__author__ = 'credvault developers'
__author_email__ = 'dev@credvault.invalid'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/credvault/credvault'
