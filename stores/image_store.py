# ════════════════════════════════════════════════
# ▶ IMPORTS
# ════════════════════════════════════════════════

import logging
import os
import uuid
from dataclasses import asdict, dataclass

import psycopg2
from PIL import Image, ImageOps
from werkzeug.utils import secure_filename

import config

logger = logging.getLogger(__name__)

MIME_LABELS = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
}


# ════════════════════════════════════════════════
# ▶ ERRORS
# ════════════════════════════════════════════════

class UploadError(Exception):
    ''' Upload rejected before any processing, message is shown to the admin '''


class FileCountError(UploadError):
    pass


class FileSizeError(UploadError):
    pass


class FileTypeError(UploadError):
    pass


class ImageProcessingError(Exception):
    pass


# ════════════════════════════════════════════════
# ▶ FILE RECORDS
# ════════════════════════════════════════════════

@dataclass
class StoredFile:
    ''' An accepted upload staged in the private temp directory '''
    path: str
    original_filename: str
    mimetype: str
    size: int


@dataclass
class ProcessedImage:
    filename: str
    thumbnail_filename: str
    public_path: str
    thumbnail_path: str


def _stream_size(stream):
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


# ════════════════════════════════════════════════
# ▶ IMAGE STORE
# ════════════════════════════════════════════════

class ImageStore:

    def __init__(
        self,
        db,
        temp_dir=config.UPLOAD_TEMP_DIR,
        public_dir=config.UPLOAD_PUBLIC_DIR,
        public_url=config.UPLOAD_PUBLIC_URL,
        max_files=config.MAX_UPLOAD_FILES,
        max_file_size=config.MAX_FILE_SIZE,
        allowed_types=config.ALLOWED_IMAGE_TYPES,
    ):
        self.db = db
        self.temp_dir = temp_dir
        self.public_dir = public_dir
        self.public_url = public_url.rstrip("/")
        self.max_files = max_files
        self.max_file_size = max_file_size
        self.allowed_types = tuple(allowed_types)
        os.makedirs(self.temp_dir, exist_ok=True)
        os.makedirs(self.public_dir, exist_ok=True)

    # ── Upload acceptance ───────────────────────────

    def _allowed_label(self):
        labels = []
        for mimetype in self.allowed_types:
            label = MIME_LABELS.get(mimetype, mimetype)
            if label not in labels:
                labels.append(label)
        if len(labels) > 1:
            return ", ".join(labels[:-1]) + " and " + labels[-1]
        return labels[0] if labels else "no"

    def accept(self, files):
        '''
        Validate and stage the uploaded files of one request.

        Empty file fields are skipped. The whole batch is rejected when any
        file breaks a limit, nothing is staged in that case.

        Raises:
            FileCountError, FileSizeError, FileTypeError
        '''
        files = [f for f in (files or []) if f and f.filename]

        if len(files) > self.max_files:
            raise FileCountError(
                f"Too many files. You can upload at most {self.max_files} images at a time."
            )

        sizes = []
        for f in files:
            if f.mimetype not in self.allowed_types:
                raise FileTypeError(
                    f"Invalid file type. Only {self._allowed_label()} images are allowed."
                )
            size = _stream_size(f.stream)
            if size > self.max_file_size:
                raise FileSizeError(
                    f"File too large. Maximum size is {self.max_file_size // (1024 * 1024)}MB per image."
                )
            sizes.append(size)

        stored = []
        try:
            for f, size in zip(files, sizes):
                ext = os.path.splitext(secure_filename(f.filename))[1].lower()
                path = os.path.join(self.temp_dir, f"img-{uuid.uuid4().hex}{ext}")
                f.save(path)
                stored.append(StoredFile(path, f.filename, f.mimetype, size))
        except OSError:
            self.discard(stored)
            raise
        return stored

    def discard(self, stored_files):
        ''' Remove staged uploads that will never be processed '''
        for stored in stored_files or []:
            try:
                os.remove(stored.path)
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Could not remove staged upload", extra={"path": stored.path}, exc_info=True)

    # ── Processing ──────────────────────────────────

    def process(self, stored):
        '''
        Resize a staged upload into the public uploads directory.

        The main image fits within IMAGE_MAX_SIZE without being enlarged, the
        thumbnail is cropped to exactly THUMBNAIL_SIZE. Both are written as
        JPEG and the staged original is removed afterwards.
        '''
        stem = os.path.splitext(os.path.basename(stored.path))[0]
        filename = f"{stem}.jpg"
        thumbnail_filename = f"thumb-{stem}.jpg"
        output_path = os.path.join(self.public_dir, filename)
        thumbnail_output_path = os.path.join(self.public_dir, thumbnail_filename)

        try:
            with Image.open(stored.path) as original:
                img = ImageOps.exif_transpose(original).convert("RGB")

                resized = img.copy()
                resized.thumbnail(config.IMAGE_MAX_SIZE, Image.Resampling.LANCZOS)
                resized.save(output_path, "JPEG", quality=config.IMAGE_QUALITY, progressive=True, optimize=True)

                thumb = ImageOps.fit(img, config.THUMBNAIL_SIZE, Image.Resampling.LANCZOS)
                thumb.save(thumbnail_output_path, "JPEG", quality=config.THUMBNAIL_QUALITY)
        except (OSError, Image.DecompressionBombError) as e:
            logger.error("Error processing image", extra={"path": stored.path, "error": str(e)})
            for path in (output_path, thumbnail_output_path):
                try:
                    os.remove(path)
                except FileNotFoundError:
                    pass
            raise ImageProcessingError("Failed to process image") from e

        os.remove(stored.path)

        return ProcessedImage(
            filename=filename,
            thumbnail_filename=thumbnail_filename,
            public_path=f"{self.public_url}/{filename}",
            thumbnail_path=f"{self.public_url}/{thumbnail_filename}",
        )

    # ── Database ────────────────────────────────────

    def persist(self, post_id, processed, caption=None):
        ''' Save image info to database '''
        image_id = uuid.uuid4().hex
        try:
            with self.db.cursor() as cur:
                cur.execute("""
                    INSERT INTO post_images (
                        id, post_id, filename, thumbnail_filename,
                        public_path, thumbnail_path, caption
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """, (
                    image_id, post_id, processed.filename, processed.thumbnail_filename,
                    processed.public_path, processed.thumbnail_path, caption
                ))
        except psycopg2.Error:
            logger.exception("Error saving image to database", extra={"post_id": post_id})
            return {"success": False, "error": "Failed to save image"}
        return {"success": True, "image_id": image_id}

    def attach(self, post_id, stored_files, captions=None):
        '''
        Process and persist every staged file for a post.

        One failing image never stops the others. Returns the list of images
        that were attached and the list of messages for those that were not.
        '''
        uploaded = []
        errors = []
        captions = list(captions or [])

        for index, stored in enumerate(stored_files or []):
            caption = captions[index].strip() if index < len(captions) and captions[index] else None
            caption = caption or None

            try:
                processed = self.process(stored)
            except ImageProcessingError as e:
                logger.warning("Skipping image", extra={"post_id": post_id, "upload": stored.original_filename})
                self.discard([stored])
                errors.append(f"{stored.original_filename}: {e}")
                continue

            result = self.persist(post_id, processed, caption)
            if not result["success"]:
                self.remove_files(asdict(processed))
                errors.append(f"{stored.original_filename}: {result['error']}")
                continue

            uploaded.append({
                "id": result["image_id"],
                "filename": processed.filename,
                "public_path": processed.public_path,
                "thumbnail_path": processed.thumbnail_path,
                "caption": caption,
            })

        return uploaded, errors

    def list_for_post(self, post_id):
        ''' Images of one post, first uploaded first '''
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT * FROM post_images
                WHERE post_id = %s
                ORDER BY created_at ASC
            """, (post_id,))
            return cur.fetchall()

    def list_for_posts(self, post_ids):
        ''' Images for many posts in one query, keyed by post id '''
        images = {post_id: [] for post_id in post_ids}
        if not images:
            return images
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT * FROM post_images
                WHERE post_id = ANY(%s)
                ORDER BY created_at ASC
            """, (list(images),))
            for row in cur.fetchall():
                images[row["post_id"]].append(row)
        return images

    def remove_files(self, image):
        ''' Delete the image and thumbnail from disk, missing files are only logged '''
        for name in (image["filename"], image["thumbnail_filename"]):
            path = os.path.join(self.public_dir, name)
            try:
                os.remove(path)
            except FileNotFoundError:
                logger.warning("Image file already missing", extra={"path": path})
            except OSError:
                logger.warning("Could not delete image file", extra={"path": path}, exc_info=True)

    def delete(self, image_id):
        try:
            with self.db.cursor() as cur:
                cur.execute("SELECT * FROM post_images WHERE id = %s", (image_id,))
                image = cur.fetchone()
                if not image:
                    return {"success": False, "error": "Image not found"}

                cur.execute("DELETE FROM post_images WHERE id = %s", (image_id,))
        except psycopg2.Error:
            logger.exception("Error deleting image", extra={"image_id": image_id})
            return {"success": False, "error": "Failed to delete image"}

        # Only after the row delete has committed
        self.remove_files(image)
        return {"success": True}

    def cleanup_orphaned(self):
        ''' Delete image rows (and files) whose post no longer exists '''
        try:
            with self.db.cursor() as cur:
                cur.execute("""
                    SELECT pi.id FROM post_images pi
                    LEFT JOIN posts p ON pi.post_id = p.id
                    WHERE p.id IS NULL
                """)
                orphans = cur.fetchall()
        except psycopg2.Error:
            logger.exception("Error cleaning up orphaned images")
            return {"success": False, "error": "Failed to clean up images"}

        deleted_count = 0
        for row in orphans:
            if self.delete(row["id"])["success"]:
                deleted_count += 1

        logger.info("Orphaned image cleanup finished", extra={"deleted_count": deleted_count})
        return {"success": True, "deleted_count": deleted_count}
