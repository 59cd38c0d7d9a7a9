"""tableprov: directive-driven table provisioning"""
__version__ = "0.1.0"
