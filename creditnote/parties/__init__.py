"""Party master data import."""

from creditnote.parties.importer import PartyImporter

__all__ = ["PartyImporter"]
