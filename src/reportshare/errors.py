class ReportShareError(RuntimeError):
    pass


class UnsupportedFileType(ReportShareError):
    def __init__(self, message: str = "Only PDF and Excel files are allowed"):
        super().__init__(message)


class SlugConflict(ReportShareError):
    """Another record already owns the slug."""

    def __init__(self, slug: str):
        super().__init__(f"Slug already in use: {slug}")
        self.slug = slug


class StorageError(ReportShareError):
    pass


class WorkbookError(ReportShareError):
    pass
