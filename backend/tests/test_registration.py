import pytest
from sqlalchemy.orm import sessionmaker

import models
from conftest import REGISTRATION_DETAILS, FakeMailer, FakePdfRenderer
from errors import (
    AlreadyRegisteredError,
    InvalidOtpError,
    NotFoundError,
    NotVerifiedError,
    TicketDispatchError,
)
from issuance import TicketIssuance
from otp_service import OtpIssuer
from registration import RegistrationWorkflow
from ticket_store import TicketStore


def test_full_registration_issues_verified_ticket(registration, mailer, pdf_renderer):
    registration.initiate("a@example.com")
    registration.verify_email("a@example.com", mailer.last_otp("a@example.com"))
    ticket = registration.complete("a@example.com", REGISTRATION_DETAILS)

    assert ticket.status == models.TicketStatus.VERIFIED.value
    assert ticket.qr_token.startswith(f"TEST-{ticket.id}-")
    assert ticket.holder_name == "Ada Lovelace"
    assert ticket.holder_dob == REGISTRATION_DETAILS["holder_dob"]
    assert len(mailer.tickets) == 1
    assert mailer.tickets[0][3] == ticket.id
    assert pdf_renderer.rendered[0]["holder_name"] == "Ada Lovelace"

    with pytest.raises(AlreadyRegisteredError):
        registration.complete("a@example.com", REGISTRATION_DETAILS)


def test_initiate_creates_pending_ticket_with_default_name(registration, store):
    registration.initiate("New.Person@Example.com")

    ticket = store.find_by_email("new.person@example.com")
    assert ticket.holder_email == "new.person@example.com"
    assert ticket.holder_name == models.DEFAULT_HOLDER_NAME
    assert ticket.status == models.TicketStatus.PENDING.value
    assert ticket.is_email_verified is False
    assert ticket.qr_token is None


def test_initiate_is_idempotent_per_email(registration, store, mailer, otp):
    first = registration.initiate("b@example.com", "Bea")
    first_code = mailer.last_otp("b@example.com")
    second = registration.initiate("B@example.com", "Beatrice")

    assert first.id == second.id
    assert store.count() == 1
    assert second.holder_name == "Beatrice"
    assert len(mailer.otps) == 2
    assert second.otp_code == mailer.last_otp("b@example.com")
    if first_code != second.otp_code:
        assert not otp.validate(second, first_code)


def test_reinitiate_resets_email_verification(registration, mailer):
    registration.initiate("c@example.com")
    ticket = registration.verify_email("c@example.com", mailer.last_otp("c@example.com"))
    assert ticket.is_email_verified

    ticket = registration.initiate("c@example.com")

    assert ticket.is_email_verified is False
    with pytest.raises(NotVerifiedError):
        registration.complete("c@example.com", REGISTRATION_DETAILS)


def test_initiate_rejects_registered_email(register, registration, mailer):
    register("done@example.com")
    otps_before = len(mailer.otps)

    with pytest.raises(AlreadyRegisteredError):
        registration.initiate("DONE@example.com")
    assert len(mailer.otps) == otps_before


def test_verify_email_rejects_wrong_or_expired_code(registration, mailer, clock, store):
    registration.initiate("d@example.com")
    code = mailer.last_otp("d@example.com")

    with pytest.raises(InvalidOtpError):
        registration.verify_email("d@example.com", "000000")
    with pytest.raises(InvalidOtpError):
        registration.verify_email("unknown@example.com", code)

    clock.advance(minutes=10)
    with pytest.raises(InvalidOtpError):
        registration.verify_email("d@example.com", code)
    assert store.find_by_email("d@example.com").is_email_verified is False


def test_verify_email_code_is_single_use(registration, mailer):
    registration.initiate("e@example.com")
    code = mailer.last_otp("e@example.com")
    ticket = registration.verify_email("e@example.com", code)

    assert ticket.is_email_verified
    assert ticket.otp_code is None
    with pytest.raises(InvalidOtpError):
        registration.verify_email("e@example.com", code)


def test_complete_without_verified_email_changes_nothing(registration, store):
    registration.initiate("f@example.com", "Fay")
    before = store.find_by_email("f@example.com")
    snapshot = (before.status, before.holder_name, before.qr_token, before.holder_phone)

    with pytest.raises(NotVerifiedError):
        registration.complete("f@example.com", REGISTRATION_DETAILS)

    store.db.expire_all()
    after = store.find_by_email("f@example.com")
    assert (after.status, after.holder_name, after.qr_token, after.holder_phone) == snapshot


def test_complete_unknown_email(registration):
    with pytest.raises(NotFoundError):
        registration.complete("ghost@example.com", REGISTRATION_DETAILS)


def test_qr_tokens_are_unique(register):
    tokens = {register(f"user{i}@example.com").qr_token for i in range(5)}
    assert len(tokens) == 5
    assert all(tokens)


def test_dispatch_failure_keeps_ticket_verified(registration, mailer, store):
    registration.initiate("g@example.com")
    registration.verify_email("g@example.com", mailer.last_otp("g@example.com"))
    mailer.fail = True

    with pytest.raises(TicketDispatchError) as excinfo:
        registration.complete("g@example.com", REGISTRATION_DETAILS)

    ticket = store.find_by_email("g@example.com")
    assert excinfo.value.ticket_id == ticket.id
    assert ticket.status == models.TicketStatus.VERIFIED.value
    assert ticket.qr_token


def test_resend_requires_pending_ticket(registration, register, mailer):
    with pytest.raises(NotFoundError):
        registration.resend("nobody@example.com")

    registration.initiate("h@example.com")
    registration.resend("h@example.com")
    assert len([o for o in mailer.otps if o[0] == "h@example.com"]) == 2

    register("registered@example.com")
    with pytest.raises(NotFoundError):
        registration.resend("registered@example.com")


def test_check_email(registration, register):
    assert registration.check_email("i@example.com") is False
    registration.initiate("i@example.com")
    assert registration.check_email("i@example.com") is False
    register("i@example.com")
    assert registration.check_email("I@EXAMPLE.COM") is True


def _workflow(session, clock):
    store = TicketStore(session)
    mailer = FakeMailer()
    otp = OtpIssuer(store, mailer, clock=clock)
    issuance = TicketIssuance(store, FakePdfRenderer(), mailer, event_name="Test Event", qr_token_prefix="TEST")
    return RegistrationWorkflow(store, otp, issuance), mailer


def test_concurrent_completions_issue_one_ticket(tmp_path, clock):
    from sqlalchemy import create_engine

    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    models.Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    setup_session = Session()
    setup, setup_mailer = _workflow(setup_session, clock)
    setup.initiate("race@example.com")
    setup.verify_email("race@example.com", setup_mailer.last_otp("race@example.com"))
    setup_session.close()

    first_session, second_session = Session(), Session()
    first, first_mailer = _workflow(first_session, clock)
    second, second_mailer = _workflow(second_session, clock)
    # Both requests have read the still-pending ticket before either writes
    assert first.store.find_by_email("race@example.com").is_email_verified
    assert second.store.find_by_email("race@example.com").is_email_verified

    winner = first.complete("race@example.com", REGISTRATION_DETAILS)
    with pytest.raises(AlreadyRegisteredError):
        second.complete("race@example.com", {**REGISTRATION_DETAILS, "holder_name": "Impostor"})

    check_session = Session()
    stored = TicketStore(check_session).find_by_email("race@example.com")
    assert stored.qr_token == winner.qr_token
    assert stored.holder_name == "Ada Lovelace"
    assert len(first_mailer.tickets) == 1
    assert second_mailer.tickets == []
    for session in (first_session, second_session, check_session):
        session.close()
    engine.dispose()
