"""
Dispensary Pricing Package

Shared pricing engine for the POS register, storefront cart and TV menus.
Resolves unit prices using Product → Tier → Promotion pipeline with regular price fallback.
"""

__version__ = "1.0.0"
