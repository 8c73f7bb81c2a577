"""storage-exchange test suite."""
