"""
Script batch — drafts scripts and fetches the avatar catalog side by side.

The scripts are what the user asked for; the avatar list only feeds the
picker, so its failure is logged and the batch goes ahead without it.
"""

import asyncio
import logging
from typing import Optional

from .models import ScriptBatch
from .storage import ScriptStore
from .heygen import HeyGenClient
from .scriptwriter import ScriptWriter

logger = logging.getLogger(__name__)


async def generate_script_batch(
    topic: str,
    num_variations: int = 3,
    user_id: Optional[str] = None,
    writer: Optional[ScriptWriter] = None,
    heygen: Optional[HeyGenClient] = None,
    store: Optional[ScriptStore] = None,
) -> ScriptBatch:
    writer = writer or ScriptWriter()
    heygen = heygen or HeyGenClient()

    scripts_result, avatars_result = await asyncio.gather(
        writer.generate_scripts(topic, num_variations),
        heygen.list_avatars(),
        return_exceptions=True,
    )

    if isinstance(scripts_result, BaseException):
        raise scripts_result

    avatars = []
    if isinstance(avatars_result, BaseException):
        logger.warning(f"Avatar list unavailable, continuing without it: {avatars_result}")
    else:
        avatars = avatars_result

    batch = ScriptBatch(topic=topic.strip(), scripts=scripts_result, avatars=avatars)

    if user_id:
        store = store or ScriptStore()
        try:
            batch.saved_id = store.save_script_set(user_id, batch.topic, batch.scripts)
        except Exception as e:
            logger.warning(f"Could not save script set for user {user_id}: {e}")

    return batch
