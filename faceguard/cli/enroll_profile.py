#!/usr/bin/env python
"""
Enroll Profile

Registers a person from still images, or adds samples to an existing person,
and writes the updated profile records back to a JSON file.

Usage:
    python -m faceguard.cli.enroll_profile --name <name> --profiles profiles.json img1.jpg img2.jpg
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List

from faceguard.core.container import ServiceContainer
from faceguard.core.exceptions import FaceGuardError
from faceguard.core.logging import bind_context, get_logger, setup_logging
from faceguard.core.utils.image import bytes_to_numpy_array, encode_data_url

logger = get_logger(__name__)


async def enroll(name: str, images: List[Path], profiles_path: Path, keep_images: bool = True) -> int:
    """Extract one descriptor per image and store them under ``name``.

    Returns:
        Number of samples added
    """
    cont = ServiceContainer()
    await cont.initialize(preload=False)
    try:
        store = cont.descriptor_store
        if profiles_path.exists():
            store.load_records(json.loads(profiles_path.read_text()))

        profile = store.find_by_name(name)
        profile_id = profile.id if profile else None
        added = 0
        for image_path in images:
            image_bytes = image_path.read_bytes()
            try:
                frame = bytes_to_numpy_array(image_bytes)
            except FaceGuardError as e:
                logger.warning("Skipping unreadable image", path=str(image_path), error=str(e))
                continue

            descriptor = await cont.recognition_service.extract_descriptor(frame)
            if descriptor is None:
                logger.warning("No face found, skipping", path=str(image_path))
                continue

            encoded = encode_data_url(image_bytes) if keep_images else None
            if profile_id is None:
                profile_id = store.create_identity(name, initial_vector=descriptor, image=encoded)
            else:
                store.append_sample(profile_id, descriptor, image=encoded)
            added += 1
            logger.info("Enrolled sample", name=name, path=str(image_path))

        profiles_path.write_text(json.dumps(store.to_records()))
        logger.info(
            "Saved profiles",
            path=str(profiles_path),
            profiles=len(store),
            samples_added=added,
        )
        return added
    finally:
        await cont.cleanup()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Register a person from image files")
    parser.add_argument("images", nargs="+", help="Image files showing the person")
    parser.add_argument("--name", required=True, help="Display name of the person")
    parser.add_argument("--profiles", default="profiles.json", help="JSON file of profile records")
    parser.add_argument(
        "--no-images",
        action="store_true",
        help="Don't store the sample images in the records"
    )
    args = parser.parse_args()

    setup_logging()
    bind_context(profile=args.name)
    try:
        added = asyncio.run(enroll(
            args.name,
            [Path(p) for p in args.images],
            Path(args.profiles),
            keep_images=not args.no_images,
        ))
    except FaceGuardError as e:
        logger.error("Enrollment failed", error=str(e), **e.details)
        sys.exit(1)
    sys.exit(0 if added else 1)


if __name__ == "__main__":
    main()
