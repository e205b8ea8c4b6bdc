from bookmark_sync.sources.export import ExportSource

__all__ = ["ExportSource"]
