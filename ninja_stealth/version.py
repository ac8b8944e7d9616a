"""NinjaStealth Meta information.
   NinjaStealth derives, stores and uses the keys behind stealth payments.
"""
__title__ = 'ninja_stealth'
__description__ = (
   'Two-factor key hierarchy, encrypted key vault and stealth address '
   'payment discovery for NinjaRupiah.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 NinjaRupiah'
__author__ = 'NinjaRupiah Team'
__license__ = 'Apache-2.0'
