"""Module entry point: save a mount profile or mount one at a directory."""
import argparse
import getpass
import logging
from typing import Optional

from .dispatcher import FilesystemDispatcher
from .models import Credentials
from .profiles import DEFAULT_REGION, MountProfile, ProfileStorage, load_shared_credentials
from .services import BotocoreTransport, ObjectStoreClient
from .settings import MountSettings, SettingsStorage

LOGGER = logging.getLogger(__name__)


def resolve_credentials(
    profile: MountProfile,
    aws_profile: Optional[str] = None,
    session_factory=None,
) -> Credentials:
    """Use the profile's stored keys, or the shared AWS files when it has none.

    An explicit ``aws_profile`` always selects the shared AWS files.
    """

    if aws_profile is None and profile.access_key and profile.secret_key:
        return profile.credentials()
    LOGGER.info("profile %s: using shared AWS credentials", profile.name)
    return load_shared_credentials(
        profile_name=aws_profile,
        region=profile.region or None,
        session_factory=session_factory,
    )


def build_dispatcher(
    profile_name: str,
    settings: MountSettings,
    *,
    aws_profile: Optional[str] = None,
    profile_storage: Optional[ProfileStorage] = None,
    session_factory=None,
) -> FilesystemDispatcher:
    profile = (profile_storage or ProfileStorage()).get(profile_name)
    client = ObjectStoreClient(
        profile.location(),
        resolve_credentials(profile, aws_profile, session_factory),
        transport=BotocoreTransport(timeout=settings.request_timeout),
        max_object_size=settings.max_object_size,
        max_response_bytes=settings.max_response_bytes,
        page_size=settings.list_page_size,
    )
    return FilesystemDispatcher(client)


def save_profile(
    profile: MountProfile,
    profile_storage: Optional[ProfileStorage] = None,
    settings_storage: Optional[SettingsStorage] = None,
) -> None:
    """Add or replace ``profile`` and write out the current mount settings."""

    profile_storage = profile_storage or ProfileStorage()
    settings_storage = settings_storage or SettingsStorage()
    profile.location()  # raises ValueError on a malformed bucket URI
    profiles = [existing for existing in profile_storage.load() if existing.name != profile.name]
    profiles.append(profile)
    profile_storage.save(profiles)
    # Leaves an editable settings file beside the profiles.
    settings_storage.save(settings_storage.load())


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(prog="pys3fs", description="Mount an S3 bucket as a filesystem.")
    parser.add_argument("profile", help="name of a saved mount profile")
    parser.add_argument("mountpoint", nargs="?", help="directory to mount the bucket at")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--aws-profile", help="take keys from this shared AWS credentials profile")
    saving = parser.add_argument_group("saving a profile")
    saving.add_argument("--bucket", metavar="S3_URI", help="save the profile for this bucket instead of mounting")
    saving.add_argument("--region", default=DEFAULT_REGION, help="bucket region")
    saving.add_argument("--endpoint-url", default="", help="S3-compatible endpoint, addressed path-style")
    saving.add_argument("--access-key", default="", help="access key id; the secret key is prompted for")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.bucket:
        secret_key = getpass.getpass("Secret key: ") if args.access_key else ""
        save_profile(
            MountProfile(
                name=args.profile,
                bucket_uri=args.bucket,
                region=args.region,
                access_key=args.access_key,
                secret_key=secret_key,
                endpoint_url=args.endpoint_url,
            )
        )
        LOGGER.info("saved profile %s", args.profile)
        return
    if not args.mountpoint:
        parser.error("a mountpoint is required unless --bucket is given")

    from .fuse_binding import mount

    settings = SettingsStorage().load()
    dispatcher = build_dispatcher(args.profile, settings, aws_profile=args.aws_profile)
    mount(dispatcher, args.mountpoint, allow_other=settings.allow_other)


if __name__ == "__main__":
    main()
