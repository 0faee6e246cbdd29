"""Credential Vault Meta information.
   Credential Vault stores third-party API credentials encrypted at rest
   and gates every change behind AMA-G governance.
"""
__title__ = 'credential_vault'
__description__ = (
   'Credential Vault stores third-party API credentials encrypted at rest '
   'and gates every change behind AMA-G governance.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
