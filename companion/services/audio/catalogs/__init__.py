"""
External audio catalogs

Tabletop Audio (curated TTRPG soundscapes), Jamendo (royalty-free music) and
Freesound (effects and ambience).
"""


class CatalogError(Exception):
    """A catalog answered with an error payload"""


__all__ = ["CatalogError"]
