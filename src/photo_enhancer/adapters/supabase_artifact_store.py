"""Supabase Storage artifact store."""

import asyncio
from dataclasses import dataclass

from supabase import Client

from photo_enhancer.services.enhancement import ArtifactStore
from photo_enhancer.services.images import artifact_filename


@dataclass
class SupabaseArtifactStore(ArtifactStore):
    """Uploads enhanced images to a public Supabase Storage bucket."""

    client: Client
    bucket: str
    prefix: str = "enhanced"

    async def put(self, content: bytes, content_type: str) -> str:
        """Upload bytes and return their public URL."""
        return await asyncio.to_thread(self._upload, content, content_type)

    def _upload(self, content: bytes, content_type: str) -> str:
        path = artifact_filename(content_type, prefix=self.prefix)
        bucket = self.client.storage.from_(self.bucket)
        bucket.upload(
            path=path,
            file=content,
            file_options={"content-type": content_type},
        )
        return bucket.get_public_url(path)
