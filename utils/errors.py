# utils/errors.py


class ExifToolError(Exception):
    """툴 호출 단위로 사용자에게 보여줄 오류의 공통 부모."""


class InvalidInput(ExifToolError):
    pass


class PathTraversal(ExifToolError):
    pass


class NotFound(ExifToolError):
    pass


class UnsupportedType(ExifToolError):
    pass


class ExtractionError(ExifToolError):
    """메타데이터 디코딩 실패 (메타데이터가 '없는' 경우와는 구분)."""


class RenameError(ExifToolError):
    pass


class PackagingError(ExifToolError):
    pass
