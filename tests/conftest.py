import io
import os
import tempfile
import threading

_TEST_ROOT = tempfile.mkdtemp(prefix="signflow-tests-")
os.environ["SIGNFLOW_DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'app.db')}"
os.environ["SIGNFLOW_UPLOAD_DIR"] = os.path.join(_TEST_ROOT, "uploads")

import pytest
from PIL import Image
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import create_tables  # noqa: F401  registers every model on Base
from database import Base
from modules.audit.services.audit_service import AuditTrailRecorder
from modules.auth.services.auth_service import AuthService
from modules.documents.models.signature import SignatureMethod
from modules.documents.models.user import User, UserRole
from modules.documents.services.document_service import DocumentService, SignerInvite
from modules.documents.services.file_storage import FileStorage
from modules.documents.services.pdf_assembly import PDFSignatureAssembler
from modules.documents.services.signature_service import Placement, SignaturePayload


def create_dummy_pdf_bytes(pages: int = 1, text: str = "PDF para test") -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf)
    for number in range(1, pages + 1):
        c.drawString(50, 750, f"{text} - page {number}")
        c.showPage()
    c.save()
    buf.seek(0)
    return buf.read()


def create_signature_png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (120, 40), (0, 0, 128, 255)).save(buf, format="PNG")
    return buf.getvalue()


def token_from_link(link: str) -> str:
    return link.rsplit("/", 1)[-1]


class RecordingNotifier:
    """Stands in for NotificationService; records calls, optionally fails."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self._lock = threading.Lock()

    def _record(self, kind, **kwargs):
        if self.fail:
            raise ConnectionError("mail relay unavailable")
        with self._lock:
            self.sent.append((kind, kwargs))

    def send_signing_request(self, **kwargs):
        self._record("signing_request", **kwargs)

    def send_signed_notification(self, **kwargs):
        self._record("document_signed", **kwargs)

    def send_rejection_notification(self, **kwargs):
        self._record("document_rejected", **kwargs)

    def of_kind(self, kind):
        return [payload for k, payload in self.sent if k == kind]


class CountingAssembler(PDFSignatureAssembler):
    """Real assembler that counts calls and can be told to fail the next N."""

    def __init__(self, fail_times: int = 0):
        self.calls = 0
        self.fail_times = fail_times
        self._lock = threading.Lock()

    def assemble_signed(self, original_pdf, stamps):
        with self._lock:
            self.calls += 1
            if self.fail_times > 0:
                self.fail_times -= 1
                raise RuntimeError("PDF engine crashed")
        return super().assemble_signed(original_pdf, stamps)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return FileStorage(str(tmp_path / "uploads"))


@pytest.fixture
def audit(session_factory):
    return AuditTrailRecorder(session_factory)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def assembler():
    return CountingAssembler()


@pytest.fixture
def make_service(session, storage, audit, notifier, assembler):
    def _make(for_session=None, **overrides):
        kwargs = dict(storage=storage, audit=audit, notifier=notifier, assembler=assembler)
        kwargs.update(overrides)
        return DocumentService(for_session or session, **kwargs)
    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def make_user(session):
    def _make(name, email, role=UserRole.USER, password=None):
        user = User(
            name=name,
            email=email.lower(),
            password_hash=AuthService.get_password_hash(password) if password else "!",
            role=role,
            is_active=True,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    return _make


@pytest.fixture
def owner(make_user):
    return make_user("Olivia Owner", "owner@example.com")


@pytest.fixture
def alice(make_user):
    return make_user("Alice Signer", "alice@example.com")


@pytest.fixture
def bob(make_user):
    return make_user("Bob Signer", "bob@example.com")


@pytest.fixture
def pdf_bytes():
    return create_dummy_pdf_bytes()


@pytest.fixture
def drawn_payload():
    return SignaturePayload(data=create_signature_png(), method=SignatureMethod.DRAWN)


@pytest.fixture
def placement():
    return Placement(page_number=1, x=100, y=120)


@pytest.fixture
def draft(service, owner, pdf_bytes, alice, bob):
    return service.create_draft(
        owner,
        file_contents=pdf_bytes,
        filename="contract.pdf",
        content_type="application/pdf",
        title="Service contract",
        signers=[
            SignerInvite(name=alice.name, email=alice.email),
            SignerInvite(name=bob.name, email=bob.email),
        ],
    )


@pytest.fixture
def sent(service, owner, draft, notifier):
    """A sent two-signer document and the plaintext tokens from the signing links."""
    service.send(owner, draft.id)
    tokens = {
        payload["to"]: token_from_link(payload["signing_url"])
        for payload in notifier.of_kind("signing_request")
    }
    return draft, tokens
