from pydantic import BaseModel, ConfigDict, Field


class HeartbeatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId", max_length=128)
    leaving: bool = False


class HeartbeatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_id: str = Field(alias="sessionId")
    timestamp: float
    leaving: bool = False


class RegisterFilesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1, max_length=128)
    paths: list[str] = Field(min_length=1)


class RegisterFilesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    file_count: int = Field(alias="fileCount")


class CleanupResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sessions_evicted: int = Field(alias="sessionsEvicted")
    links_evicted: int = Field(alias="linksEvicted")
    jobs_pruned: int = Field(alias="jobsPruned")
    files_deleted: int = Field(alias="filesDeleted")
    failures: list[str] = Field(default_factory=list)
