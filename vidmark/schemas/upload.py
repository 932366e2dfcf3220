from vidmark.schemas.job import CamelModel


class PresignRequest(CamelModel):
    file_name: str
    content_type: str


class PresignResponse(CamelModel):
    success: bool = True
    upload_url: str
    public_url: str
    key: str
