from .base import EvidenceStorage
from .supabase import SupabaseBucketStorage

__all__ = ["EvidenceStorage", "SupabaseBucketStorage"]
