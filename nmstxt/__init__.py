"""NMS.TXT: a text-based space exploration game run by an AI Game Master."""
