"""zk-vault Meta information.
   zk-vault keeps a password-derived master key in memory and uses it
   to encrypt record fields before they leave the device.
"""
__title__ = 'zk_vault'
__description__ = (
   'Zero-knowledge vault core: password-derived master key, '
   'field-level AES-GCM encryption and session locking.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/zk-vault'
