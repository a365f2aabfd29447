# storage.py
import os
import logging
import boto3
from botocore.exceptions import ClientError

from config import settings

logger = logging.getLogger(__name__)

AWS_REGION = os.getenv("AWS_REGION")
AWS_S3_BUCKET = os.getenv("AWS_S3_BUCKET")

_session = None
_s3 = None
_root_folder_created = False


def get_s3_client():
    global _session, _s3
    if _s3 is not None:
        return _s3
    _session = boto3.session.Session(region_name=AWS_REGION or None)
    _s3 = _session.client("s3")
    return _s3


def s3_key_exists(bucket: str, key: str) -> bool:
    s3 = get_s3_client()
    try:
        s3.head_object(Bucket=bucket, Key=key)
        return True
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code")
        if code in {"404", "NoSuchKey", "NotFound"}:
            return False
        raise


def create_folder_marker(bucket: str, prefix: str) -> None:
    key = prefix.rstrip("/") + "/"
    get_s3_client().put_object(Bucket=bucket, Key=key, Body=b"")


def ensure_root_folder() -> bool:
    """
    Create the user-files root once per process.

    Uses an S3 folder marker when a bucket is configured, a local directory
    otherwise. Returns True only on the call that did the work.
    """
    global _root_folder_created
    if _root_folder_created:
        return False

    root = settings.files_root
    if AWS_S3_BUCKET:
        if not s3_key_exists(AWS_S3_BUCKET, root.rstrip("/") + "/"):
            create_folder_marker(AWS_S3_BUCKET, root)
            logger.info(f"Created root folder s3://{AWS_S3_BUCKET}/{root}/")
    else:
        os.makedirs(root, exist_ok=True)
        logger.info(f"Root folder ready at {root}")

    _root_folder_created = True
    return True
