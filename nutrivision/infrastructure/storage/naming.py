"""Object naming for stored images."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from werkzeug.utils import secure_filename


def generate_object_path(
    user_id: str, filename: str, now: Optional[datetime] = None
) -> str:
    """Unique object path: <user_id>/<YYYYmmdd_HHMMSS>_<8 hex>_<secured name>.

    Example:
        >>> generate_object_path("user123", "../lunch photo.jpg").split("_")[-1]
        'photo.jpg'
    """
    timestamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
    random_str = uuid.uuid4().hex[:8]
    safe_name = secure_filename(filename or "") or "image"
    return f"{user_id}/{timestamp}_{random_str}_{safe_name}"
