"""Signed URL service shared by manifest generation and playback.

URLs are presigned against the internal object-store endpoint, which is
the only endpoint that trusts the signature, then their origin and path
prefix are rewritten to the public base URL. The query string (the
signature itself) is never touched, so a reverse proxy forwarding
``<public base>/<bucket>/<key>`` to the store keeps it valid.
"""

from urllib.parse import quote, urlsplit, urlunsplit

from botocore.exceptions import BotoCoreError, ClientError

from hlspipe.core.storage import StorageError

DEFAULT_SIGNED_URL_TTL = 3600


def rewrite_to_public_base(signed_url: str, public_base_url: str, bucket: str, key: str) -> str:
    """Move a presigned URL onto the public base URL.

    Args:
        signed_url: URL presigned against the internal endpoint
        public_base_url: Public scheme://host[:port][/path] clients can reach
        bucket: Bucket name
        key: Object key

    Returns:
        ``<public base>/<bucket>/<key>?<original query>``
    """
    signed = urlsplit(signed_url)
    public = urlsplit(public_base_url)
    base_path = public.path.rstrip("/")
    path = f"{base_path}/{quote(bucket, safe='')}/{quote(key, safe='/')}"
    return urlunsplit((public.scheme, public.netloc, path, signed.query, ""))


class UrlSigner:
    """Issues time-limited GET URLs that only expose the public host."""

    def __init__(self, client, public_base_url: str):
        """Initialize signer.

        Args:
            client: boto3 S3 client bound to the internal endpoint
            public_base_url: Base URL clients use to reach the store
        """
        self.client = client
        self.public_base_url = public_base_url

    def sign(self, bucket: str, key: str, ttl: int = DEFAULT_SIGNED_URL_TTL) -> str:
        """Sign a GET for ``bucket/key`` valid for ``ttl`` seconds."""
        try:
            signed_url = self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=ttl,
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to sign {bucket}/{key}: {e}", bucket, key) from e
        return rewrite_to_public_base(signed_url, self.public_base_url, bucket, key)
