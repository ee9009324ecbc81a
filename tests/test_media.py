import pytest

from ephemera.common.errors import Forbidden, NotFound, UpstreamFailure, ValidationError
from ephemera.models.enums import MediaType, MessageType, Plan
from ephemera.services.media.service import MB, safe_filename, validate_upload


def test_validate_upload_checks_content_type():
    with pytest.raises(ValidationError):
        validate_upload(MediaType.IMAGE, "application/pdf", 1024, Plan.FREE, 0)

    validate_upload(MediaType.PDF, "application/pdf", 1024, Plan.FREE, 0)


def test_validate_upload_checks_plan_limits():
    with pytest.raises(ValidationError):
        validate_upload(MediaType.VIDEO, "video/mp4", 11 * MB, Plan.FREE, 0)

    validate_upload(MediaType.VIDEO, "video/mp4", 11 * MB, Plan.PRO, 0)

    with pytest.raises(ValidationError) as exc_info:
        validate_upload(MediaType.IMAGE, "image/png", 2 * MB, Plan.FREE, 99 * MB)
    assert exc_info.value.details["remaining"] == MB

    with pytest.raises(ValidationError):
        validate_upload(MediaType.IMAGE, "image/png", 0, Plan.FREE, 0)


def test_safe_filename():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("my photo (1).png") == "my_photo__1_.png"
    assert safe_filename("") == "file"


async def test_upload_tracks_storage(app, alice):
    media = await app.media_service.upload(alice, "cat.png", "image/png", b"\x89PNG" * 10, MediaType.IMAGE)

    assert media.size == 40
    assert media.url.startswith("https://media.test/")
    assert app.store.users[alice].storage_used == 40
    assert len(app.store.objects) == 1


async def test_upload_fails_when_storage_is_down(app, alice):
    app.store.storage_up = False

    with pytest.raises(UpstreamFailure):
        await app.media_service.upload(alice, "cat.png", "image/png", b"data", MediaType.IMAGE)

    assert not app.store.media
    assert app.store.users[alice].storage_used == 0


async def test_only_owner_can_attach_or_delete(app, alice, bob):
    media = await app.media_service.upload(alice, "notes.txt", "text/plain", b"hello", MediaType.DOCUMENT)
    conversation = await app.conversation_service.open_conversation(alice, bob)

    with pytest.raises(NotFound):
        await app.conversation_service.send_direct_message(
            conversation.conversation_id, bob, "notes.txt", type=MessageType.DOCUMENT, media_id=media.media_id
        )

    with pytest.raises(Forbidden):
        await app.media_service.delete(media.media_id, bob)

    await app.media_service.delete(media.media_id, alice)
    assert not app.store.media
    assert not app.store.objects
    assert app.store.users[alice].storage_used == 0


async def test_purged_conversation_releases_media(app, alice, bob):
    media = await app.media_service.upload(alice, "a.png", "image/png", b"img", MediaType.IMAGE)
    conversation = await app.conversation_service.open_conversation(alice, bob)
    await app.conversation_service.send_direct_message(
        conversation.conversation_id, alice, "a.png", type=MessageType.IMAGE, media_id=media.media_id
    )

    await app.conversation_service.on_user_logout(alice)
    await app.conversation_service.on_user_logout(bob)

    assert not app.store.media
    assert not app.store.objects


async def test_message_type_must_match_attachment(app, alice, bob):
    image = await app.media_service.upload(alice, "a.png", "image/png", b"img", MediaType.IMAGE)
    conversation = await app.conversation_service.open_conversation(alice, bob)
    cid = conversation.conversation_id

    with pytest.raises(ValidationError):
        await app.conversation_service.send_direct_message(cid, alice, "a.png", type=MessageType.IMAGE)

    with pytest.raises(ValidationError):
        await app.conversation_service.send_direct_message(cid, alice, "look", media_id=image.media_id)

    with pytest.raises(ValidationError):
        await app.conversation_service.send_direct_message(
            cid, alice, "a.png", type=MessageType.PDF, media_id=image.media_id
        )

    assert not app.store.direct_messages

    sent = await app.conversation_service.send_direct_message(
        cid, alice, "a.png", type=MessageType.IMAGE, media_id=image.media_id
    )
    assert sent.media_id == image.media_id


async def test_room_attachments_are_checked_before_secret_typing(app, alice, bob):
    image = await app.media_service.upload(alice, "a.png", "image/png", b"img", MediaType.IMAGE)
    room = await app.room_service.create_room(alice, "Gallery")
    await app.room_service.join_room(room.room_id, bob)

    with pytest.raises(ValidationError):
        await app.room_service.send_room_message(room.room_id, alice, "x.pdf", type=MessageType.PDF)

    with pytest.raises(ValidationError):
        await app.room_service.send_room_message(room.room_id, alice, "look", media_id=image.media_id)

    secret = await app.room_service.send_room_message(
        room.room_id, alice, "a.png", type=MessageType.IMAGE, media_id=image.media_id, recipient_id=bob
    )
    assert secret.type == MessageType.SECRET
    assert secret.media_id == image.media_id
