from .patch_applier import PatchApplier, PatchResult, validate_patch
from .source_json import (
    export_crossref_json,
    export_source_json,
    flatten_source_tree,
    import_source_json,
    sanitize_filename,
)

__all__ = [
    "PatchApplier",
    "PatchResult",
    "export_crossref_json",
    "export_source_json",
    "flatten_source_tree",
    "import_source_json",
    "sanitize_filename",
    "validate_patch",
]
