#reversal/storage_client
"""상태 파일 저장소 추상화입니다.

STATE_STORAGE_METHOD가 GCS이고 클라이언트가 주어지면 버킷에, 그 외에는
LOCAL_DATA_DIR 아래 로컬 파일에 JSON을 읽고 씁니다. 경로는 항상
데이터 디렉터리 기준 상대 경로(예: "analysis/2024-01-01.json")입니다.
"""

import asyncio
import json
import logging
import os
from typing import Dict, List, Optional, Union

import aiofiles

import config

logger = logging.getLogger(config.APP_LOGGER_NAME)

JsonData = Union[List, Dict]


def local_path(filename: str) -> str:
    return os.path.join(config.LOCAL_DATA_DIR, filename)


def _use_gcs(gcs_client) -> bool:
    return config.STATE_STORAGE_METHOD == "GCS" and gcs_client is not None


def _blob(gcs_client, filename: str):
    return gcs_client.bucket(config.GCS_BUCKET_NAME).blob(filename)


def _dumps(data: JsonData) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


async def load_json(filename: str, gcs_client=None) -> Optional[JsonData]:
    """JSON 파일을 읽습니다. 파일이 없거나 읽을 수 없으면 None을 반환합니다."""
    try:
        if _use_gcs(gcs_client):
            text = await _read_gcs(gcs_client, filename)
        else:
            text = await _read_local(local_path(filename))
    except Exception as e:
        logger.warning(f"파일 로드 실패 ({filename}): {e}")
        return None

    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"JSON 형식 오류로 파일을 무시합니다: {filename}")
        return None


async def save_json(filename: str, data: JsonData, gcs_client=None):
    """JSON 파일을 씁니다. 실패 시 로그를 남기고 예외를 다시 발생시킵니다."""
    try:
        if _use_gcs(gcs_client):
            await asyncio.to_thread(
                _blob(gcs_client, filename).upload_from_string,
                _dumps(data),
                content_type="application/json",
            )
        else:
            await _write_local(local_path(filename), _dumps(data))
    except Exception as e:
        logger.error(f"파일 저장 실패 ({filename}): {e}", exc_info=True)
        raise


async def list_files(prefix: str, gcs_client=None) -> List[str]:
    """prefix 아래의 모든 파일을 데이터 디렉터리 기준 상대 경로로 반환합니다."""
    if _use_gcs(gcs_client):
        bucket = gcs_client.bucket(config.GCS_BUCKET_NAME)
        # list_blobs는 순회 시점에 페이지를 요청하므로 순회까지 스레드에서 처리
        return await asyncio.to_thread(
            lambda: sorted(blob.name for blob in bucket.list_blobs(prefix=prefix))
        )

    base_dir = local_path(prefix)
    if not os.path.isdir(base_dir):
        return []

    names = []
    for root, _dirs, files in os.walk(base_dir):
        for name in files:
            relative = os.path.relpath(os.path.join(root, name), config.LOCAL_DATA_DIR)
            names.append(relative.replace(os.sep, "/"))
    return sorted(names)


async def delete_file(filename: str, gcs_client=None):
    if _use_gcs(gcs_client):
        await asyncio.to_thread(_blob(gcs_client, filename).delete)
    else:
        os.remove(local_path(filename))


async def _read_gcs(gcs_client, filename: str) -> Optional[str]:
    blob = _blob(gcs_client, filename)
    if not await asyncio.to_thread(blob.exists):
        return None
    return await asyncio.to_thread(blob.download_as_text)


async def _read_local(filepath: str) -> Optional[str]:
    if not os.path.exists(filepath):
        return None
    async with aiofiles.open(filepath, mode="r", encoding="utf-8") as f:
        return await f.read()


async def _write_local(filepath: str, text: str):
    os.makedirs(os.path.dirname(filepath), exist_ok=True)
    async with aiofiles.open(filepath, mode="w", encoding="utf-8") as f:
        await f.write(text)
