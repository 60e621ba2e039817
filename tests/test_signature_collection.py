import base64
import math
import threading

import pytest

from conftest import create_signature_png
from modules.documents.errors import (
    AuthorizationError, ConflictError, NotFoundError, SigningWorkflowError, ValidationError
)
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.signature import Signature, SignatureMethod
from modules.documents.models.user import User
from modules.documents.services.signature_service import (
    Placement, SignaturePayload, decode_signature_payload, payload_from_upload, validate_placement
)


def run_concurrently(*calls):
    """Start every call at the same instant; collect (result, error) per call."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def worker(index, call):
        barrier.wait()
        try:
            results[index] = (call(), None)
        except SigningWorkflowError as e:
            results[index] = (None, e)

    threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


# --- Single submissions ---

def test_authenticated_signer_can_sign(service, alice, sent, drawn_payload, placement):
    document, _ = sent

    outcome = service.submit_signature_authenticated(alice, document.id, drawn_payload, placement)

    assert outcome.signature.signer_email == "alice@example.com"
    assert outcome.signature.signer_name == "Alice Signer"
    assert outcome.signature.event_hash
    assert outcome.all_signed is False


def test_non_signer_cannot_sign(service, sent, make_user, drawn_payload, placement):
    document, _ = sent
    mallory = make_user("Mallory", "mallory@example.com")
    with pytest.raises(AuthorizationError):
        service.submit_signature_authenticated(mallory, document.id, drawn_payload, placement)


def test_cannot_sign_a_draft(service, alice, draft, drawn_payload, placement):
    with pytest.raises(ConflictError):
        service.submit_signature_authenticated(alice, draft.id, drawn_payload, placement)


def test_double_submission_is_a_conflict(service, alice, sent, drawn_payload, placement, session):
    document, _ = sent
    service.submit_signature_authenticated(alice, document.id, drawn_payload, placement)

    with pytest.raises(ConflictError):
        service.submit_signature_authenticated(alice, document.id, drawn_payload, placement)

    assert session.query(Signature).filter(Signature.document_id == document.id).count() == 1


def test_token_cannot_be_reused(service, sent, drawn_payload, placement):
    _, tokens = sent
    token = tokens["alice@example.com"]
    service.submit_signature_by_token(token, drawn_payload, placement)

    with pytest.raises(NotFoundError):
        service.submit_signature_by_token(token, drawn_payload, placement)
    with pytest.raises(NotFoundError):
        service.get_signing_context(token)


def test_token_after_account_signature_is_a_conflict(service, alice, sent, drawn_payload, placement, session):
    document, tokens = sent
    service.submit_signature_authenticated(alice, document.id, drawn_payload, placement)

    with pytest.raises(ConflictError):
        service.submit_signature_by_token(tokens["alice@example.com"], drawn_payload, placement)

    assert session.query(Signature).filter(Signature.document_id == document.id).count() == 1


def test_failed_submission_leaves_token_usable(service, sent, drawn_payload):
    _, tokens = sent
    token = tokens["bob@example.com"]

    with pytest.raises(ValidationError):
        service.submit_signature_by_token(token, drawn_payload, Placement(page_number=5, x=10, y=10))

    assert service.tokens.verify(token) is not None


def test_signing_context_does_not_consume_token(service, sent):
    document, tokens = sent
    context = service.get_signing_context(tokens["bob@example.com"])

    assert context.document.id == document.id
    assert context.signer.name == "Bob Signer"
    assert service.tokens.verify(tokens["bob@example.com"]) is not None


def test_typed_signature_uses_text_payload(service, sent, placement):
    _, tokens = sent
    payload = decode_signature_payload("Bob Signer", SignatureMethod.TYPED)

    outcome = service.submit_signature_by_token(
        tokens["bob@example.com"], payload, placement, signer_name="Robert Signer"
    )

    assert outcome.signature.method == SignatureMethod.TYPED
    assert outcome.signature.payload == b"Bob Signer"
    assert outcome.signature.signer_name == "Robert Signer"


def test_signatures_listed_newest_first(service, alice, owner, sent, drawn_payload, placement, make_user):
    document, tokens = sent
    service.submit_signature_by_token(tokens["alice@example.com"], drawn_payload, placement)
    service.submit_signature_by_token(tokens["bob@example.com"], drawn_payload, placement)

    listed = service.list_document_signatures(owner, document.id)
    assert [s.signer_email for s in listed] == ["bob@example.com", "alice@example.com"]
    assert len(service.list_document_signatures(alice, document.id)) == 2

    with pytest.raises(AuthorizationError):
        service.list_document_signatures(make_user("Eve", "eve@example.com"), document.id)


# --- Placement and payload validation ---

@pytest.mark.parametrize("placement", [
    None,
    Placement(page_number=0, x=10, y=10),
    Placement(page_number=2, x=10, y=10),
    Placement(page_number=1, x=None, y=10),
    Placement(page_number=1, x=-1, y=10),
    Placement(page_number=1, x=10, y=10, width=0),
    Placement(page_number=1, x=10, y=10, height=-5),
    Placement(page_number=1, x=math.nan, y=10),
    Placement(page_number=1, x=10, y=math.inf),
    Placement(page_number=1, x=-math.inf, y=10),
    Placement(page_number=1, x=10, y=10, width=math.inf),
    Placement(page_number=1, x=10, y=10, width=math.nan),
    Placement(page_number=1, x=10, y=10, height=-math.inf),
])
def test_invalid_placements(placement):
    with pytest.raises(ValidationError):
        validate_placement(placement, page_count=1)


def test_valid_placement_on_last_page():
    validate_placement(Placement(page_number=3, x=0, y=0, width=150, height=50), page_count=3)


def test_decode_data_url_payload():
    png = create_signature_png()
    data_url = "data:image/png;base64," + base64.b64encode(png).decode()

    payload = decode_signature_payload(data_url, SignatureMethod.DRAWN)
    assert payload.data == png
    assert payload.method == SignatureMethod.DRAWN


@pytest.mark.parametrize("data", ["", "   ", "data:image/png;base64,@@not-base64@@"])
def test_decode_rejects_bad_payloads(data):
    with pytest.raises(ValidationError):
        decode_signature_payload(data, SignatureMethod.UPLOADED)


def test_empty_payload_rejected_before_touching_document(service, sent, placement):
    _, tokens = sent
    with pytest.raises(ValidationError):
        service.submit_signature_by_token(tokens["alice@example.com"], SignaturePayload(data=b""), placement)


def test_non_finite_coordinates_cannot_block_completion(service, sent, drawn_payload, placement, session):
    document, tokens = sent
    service.submit_signature_by_token(tokens["alice@example.com"], drawn_payload, placement)

    with pytest.raises(ValidationError):
        service.submit_signature_by_token(
            tokens["bob@example.com"], drawn_payload, Placement(page_number=1, x=math.inf, y=100)
        )
    assert session.query(Signature).filter(Signature.document_id == document.id).count() == 1

    outcome = service.submit_signature_by_token(tokens["bob@example.com"], drawn_payload, placement)
    assert outcome.completed is True
    assert outcome.document.status == DocumentStatus.SIGNED


def test_uploaded_image_is_stored_as_raw_bytes(service, sent, placement):
    _, tokens = sent
    png = create_signature_png()

    outcome = service.submit_signature_by_token(
        tokens["alice@example.com"], payload_from_upload(png, "image/png"), placement
    )

    assert outcome.signature.method == SignatureMethod.UPLOADED
    assert outcome.signature.payload == png


@pytest.mark.parametrize("contents, content_type", [
    (b"", "image/png"),
    (b"GIF89a...", "image/gif"),
    (b"%PDF-1.4", "application/pdf"),
    (b"\x89PNG", None),
])
def test_upload_rejects_empty_or_non_image_files(contents, content_type):
    with pytest.raises(ValidationError):
        payload_from_upload(contents, content_type)


# --- Concurrency ---

def test_concurrent_last_two_signers_complete_exactly_once(
    make_service, session_factory, sent, drawn_payload, placement, assembler, notifier
):
    document, tokens = sent
    sessions = [session_factory(), session_factory()]
    services = [make_service(for_session=s) for s in sessions]

    try:
        results = run_concurrently(
            lambda: services[0].submit_signature_by_token(tokens["alice@example.com"], drawn_payload, placement),
            lambda: services[1].submit_signature_by_token(tokens["bob@example.com"], drawn_payload, placement),
        )
    finally:
        for s in sessions:
            s.close()

    assert [error for _, error in results] == [None, None]
    outcomes = [outcome for outcome, _ in results]
    assert sorted(o.all_signed for o in outcomes) == [False, True]
    assert assembler.calls == 1
    assert len(notifier.of_kind("document_signed")) == 1

    with session_factory() as check:
        doc = check.get(Document, document.id)
        assert doc.status == DocumentStatus.SIGNED
        assert doc.signed_file_hash is not None
        assert all(s.signed for s in doc.signers)


def test_same_signer_via_token_and_account_concurrently(
    make_service, session_factory, sent, drawn_payload, placement
):
    document, tokens = sent
    sessions = [session_factory(), session_factory()]
    services = [make_service(for_session=s) for s in sessions]
    alice = sessions[1].query(User).filter(User.email == "alice@example.com").one()

    try:
        results = run_concurrently(
            lambda: services[0].submit_signature_by_token(tokens["alice@example.com"], drawn_payload, placement),
            lambda: services[1].submit_signature_authenticated(alice, document.id, drawn_payload, placement),
        )
    finally:
        for s in sessions:
            s.close()

    errors = [error for _, error in results if error is not None]
    assert len(errors) == 1
    assert isinstance(errors[0], ConflictError)

    with session_factory() as check:
        rows = check.query(Signature).filter(
            Signature.document_id == document.id, Signature.signer_email == "alice@example.com"
        ).count()
        assert rows == 1
        assert check.get(Document, document.id).status == DocumentStatus.SENT


def test_same_token_submitted_twice_concurrently(make_service, session_factory, sent, drawn_payload, placement):
    document, tokens = sent
    token = tokens["bob@example.com"]
    sessions = [session_factory(), session_factory()]
    services = [make_service(for_session=s) for s in sessions]

    try:
        results = run_concurrently(
            lambda: services[0].submit_signature_by_token(token, drawn_payload, placement),
            lambda: services[1].submit_signature_by_token(token, drawn_payload, placement),
        )
    finally:
        for s in sessions:
            s.close()

    successes = [outcome for outcome, error in results if error is None]
    errors = [error for _, error in results if error is not None]
    assert len(successes) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], (ConflictError, NotFoundError))

    with session_factory() as check:
        assert check.query(Signature).filter(Signature.document_id == document.id).count() == 1
