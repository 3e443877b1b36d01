"""OMR worker: turns uploaded score images into MusicXML plus measure previews."""
