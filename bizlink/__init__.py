"""BizLink realtime core."""
