from pydantic import BaseModel


class PurgeSnapshotsResponse(BaseModel):
    deleted: int
    total_snapshots: int
    idempotency_records: int
    view_snapshots: int
    expired_snapshots: int
