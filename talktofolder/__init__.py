"""Talk To Folder - chat with the documents of a Google Drive folder"""

__version__ = "1.0.0"
