"""elearning-parser - storage access for packaged eLearning content.

This package provides:
- A single file access contract used by SCORM, AICC and cmi5 parsers
- Backends for local directories, zip archives, in-memory archives,
  bundled package resources and S3-compatible object storage
- A caching decorator and a module file provider facade
"""

__version__ = "0.3.0"
