import boto3
from botocore.exceptions import ClientError

from unisphere.config import settings

MISSING_CODES = ("404", "NoSuchKey", "NotFound")


class S3Storage:
    def __init__(self, bucket: str | None = None, public_base_url: str | None = None, client=None):
        self.bucket = bucket or settings.S3_BUCKET
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.client = client or boto3.client(
            "s3",
            region_name = settings.S3_REGION,
            aws_access_key_id = settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key = settings.S3_SECRET_ACCESS_KEY,
        )

    def save(self, data: bytes, relative_path: str, content_type: str | None = None) -> None:
        params = {"Bucket": self.bucket, "Key": relative_path, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        self.client.put_object(**params)

    # get metadata
    def head(self, relative_path: str) -> dict | None:
        try:
            return self.client.head_object(Bucket=self.bucket, Key=relative_path)
        except ClientError as e:
            code = getattr(e, "response", {}).get("Error", {}).get("Code")
            if code in MISSING_CODES:
                return None
            raise

    def exists(self, relative_path: str) -> bool:
        return self.head(relative_path) is not None

    def delete(self, relative_path: str) -> bool:
        # delete_object succeeds for absent keys, so look first to report a miss
        if not self.exists(relative_path):
            return False
        self.client.delete_object(Bucket=self.bucket, Key=relative_path)
        return True

    def url_for(self, relative_path: str) -> str:
        return f"{self.public_base_url}/{relative_path}"
