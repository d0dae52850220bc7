"""aiplan: turn one natural-language instruction into a reviewed, undoable file plan."""

__version__ = "0.1.0"
