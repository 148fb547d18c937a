from unisphere.schemas.common import CamelModel


class FileResponse(CamelModel):
    id: int
    file_name: str
    file_url: str
    file_type: str
    file_size: int
