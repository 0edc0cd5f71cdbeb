import re

import pytest
from pydantic import ValidationError

from portal.domains import JURIDICO, OUVIDORIA, PROCON, UNCLASSIFIED, VEREADORES
from portal.errors import (
    AttachmentError,
    NotAuthenticatedError,
    PermissionDeniedError,
    ProfileNotFoundError,
    StoreError,
)
from portal.models.profile import NOT_INFORMED
from portal.models.submission import ANONYMOUS_USER_ID, Submission
from portal.services.notification_service import NOTIFICATIONS_COLLECTION
from portal.services.firebase_service import MAX_DOCUMENT_BYTES, document_size
from portal.services.submission_service import filter_by_status, status_histogram

from conftest import make_ctx

LEGAL_AID = {"assunto": "Property boundary dispute", "descricao": "neighbor built a fence on my lot"}

PROCON_FORM = {
    "tipo_reclamacao": "Produto com defeito",
    "classificacao": "Telecomunicações",
    "assunto_denuncia": "Celular não liga",
    "cnpj": "12.345.678/0001-90",
    "fornecedor_resolver": "Sim",
    "descricao": "Aparelho parou de funcionar com uma semana de uso.",
}

OUVIDORIA_FORM = {"tipo_manifestacao": "Sugestão", "assunto": "Iluminação", "descricao": "Mais postes na praça."}


def test_legal_aid_request_flow(submissions, notifications, fake_db, citizen, admin):
    submission = submissions.submit(citizen, "juridico", LEGAL_AID)
    assert submission.status == "Aguardando Atendimento"

    with submissions.subscribe_user(citizen, "juridico") as history:
        assert [(r.id, r.status) for r in history.items] == [(submission.id, "Aguardando Atendimento")]
        assert history.items[0].subject == "Property boundary dispute"

        notification = submissions.change_status(admin, "juridico", submission.id, "Em Análise")
        assert history.items[0].status == "Em Análise"

    assert notification.target_user_id == "u1"
    assert notification.submission_id == submission.id
    assert notification.status == "Em Análise"
    assert notification.domain == "juridico"
    assert notification.user_email == "maria@example.com"
    assert len(fake_db.docs(NOTIFICATIONS_COLLECTION)) == 1
    assert [n.submission_id for n in notifications.unread_for(citizen)] == [submission.id]


def test_submit_stores_domain_initial_status_and_empty_threads(submissions, fake_db, citizen):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    stored = fake_db.docs(JURIDICO.collection)[submission.id]
    assert stored["status"] == "Aguardando Atendimento"
    assert stored["messages"] == {}
    assert stored["anexos"] == []
    assert stored["user_id"] == "u1"
    assert stored["identificacao"] == "identificado"
    assert stored["dados_solicitacao"] == LEGAL_AID
    assert "protocolo" not in stored


def test_anonymous_submission_has_sentinel_and_no_snapshot(submissions, fake_db, citizen, admin):
    submission = submissions.submit(citizen, OUVIDORIA, OUVIDORIA_FORM, anonymous=True)
    stored = fake_db.docs(OUVIDORIA.collection)[submission.id]
    assert stored["user_id"] == ANONYMOUS_USER_ID
    assert stored["identificacao"] == ANONYMOUS_USER_ID
    assert "dados_usuario" not in stored
    assert stored["status"] == "Recebida"

    assert submissions.change_status(admin, OUVIDORIA, submission.id, "Em Análise") is None
    assert fake_db.docs(NOTIFICATIONS_COLLECTION) == {}
    with submissions.subscribe_user(citizen, OUVIDORIA) as history:
        assert history.items == []


def test_anonymous_not_allowed_outside_anonymous_domains(submissions, fake_db, citizen):
    with pytest.raises(ValueError):
        submissions.submit(citizen, JURIDICO, LEGAL_AID, anonymous=True)
    assert fake_db.docs(JURIDICO.collection) == {}


def test_submit_requires_signed_in_user(submissions, fake_db):
    with pytest.raises(NotAuthenticatedError):
        submissions.submit(None, JURIDICO, LEGAL_AID)
    assert fake_db.docs(JURIDICO.collection) == {}


def test_invalid_form_writes_nothing(submissions, fake_db, citizen):
    with pytest.raises(ValidationError):
        submissions.submit(citizen, JURIDICO, {"assunto": "  ", "descricao": "algo"})
    with pytest.raises(ValidationError):
        submissions.submit(citizen, OUVIDORIA, {"tipo_manifestacao": "Pedido", "assunto": "a", "descricao": "b"})
    assert fake_db.docs(JURIDICO.collection) == {}
    assert fake_db.docs(OUVIDORIA.collection) == {}


def test_profile_snapshot_is_a_copy(submissions, fake_db, citizen):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    fake_db.collection("users").document("u1").update({"name": "Maria Souza", "city": "Maracanaú"})

    stored = Submission.from_doc(fake_db.docs(JURIDICO.collection)[submission.id])
    assert stored.dados_usuario["name"] == "Maria Silva"
    assert stored.dados_usuario["city"] == "Pacatuba"
    assert stored.dados_usuario["address"] == NOT_INFORMED
    assert stored.dados_usuario["id"] == "u1"
    assert stored.dados_usuario["email"] == "maria@example.com"


def test_snapshot_email_falls_back_to_auth_email(submissions, fake_db):
    fake_db.collection("users").document("u2").set({"name": "João", "tipo": "Cidadão"})
    ctx = make_ctx("u2", "joao@example.com", name="João")
    submission = submissions.submit(ctx, JURIDICO, LEGAL_AID)
    assert submission.dados_usuario["email"] == "joao@example.com"
    assert submission.dados_usuario["cpf"] == NOT_INFORMED


def test_citizen_counter_requires_stored_profile(submissions, fake_db):
    ctx = make_ctx("ghost", "ghost@example.com")
    with pytest.raises(ProfileNotFoundError):
        submissions.submit(ctx, "balcao", {"assunto": "Certidão", "descricao": "Preciso de uma certidão."})
    assert fake_db.docs("balcao_cidadao") == {}


def test_procon_gets_protocol_and_clean_cnpj(submissions, citizen):
    submission = submissions.submit(citizen, PROCON, PROCON_FORM)
    assert re.fullmatch(r"\d{10}", submission.protocolo)
    assert submission.dados_solicitacao["cnpj"] == "12345678000190"
    assert submission.status == "Aberta"


def test_resubmission_creates_distinct_records(submissions, fake_db, citizen):
    first = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    second = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    assert first.id != second.id
    assert len(fake_db.docs(JURIDICO.collection)) == 2


def test_histogram_counts_every_record_in_category_order():
    records = [Submission(user_id="u", status=status)
               for status in ("Aberta", "Aberta", "Finalizada", None, "Arquivada", "Em Análise")]
    histogram = status_histogram(PROCON, records)
    assert list(histogram) == list(PROCON.statuses) + [UNCLASSIFIED]
    assert histogram == {"Aberta": 2, "Em Análise": 1, "Pendente": 0, "Em Negociação": 0, "Finalizada": 1,
                         UNCLASSIFIED: 2}
    assert sum(histogram.values()) == len(records)


def test_histogram_of_nothing_keeps_zero_categories():
    histogram = status_histogram("juridico", [])
    assert histogram == {"Aguardando Atendimento": 0, "Em Análise": 0, "Concluído": 0, UNCLASSIFIED: 0}


def test_filter_by_status():
    records = [Submission(user_id="u", status=s) for s in ("Recebida", "Em Análise", "Recebida")]
    assert len(filter_by_status(records, "Todas")) == 3
    assert len(filter_by_status(records, "Recebida")) == 2
    assert filter_by_status(records, "Encaminhada") == []


def test_change_status_validates_vocabulary_and_role(submissions, fake_db, citizen, admin):
    submission = submissions.submit(citizen, PROCON, PROCON_FORM)
    with pytest.raises(ValueError):
        submissions.change_status(admin, PROCON, submission.id, "Concluído")
    with pytest.raises(PermissionDeniedError):
        submissions.change_status(citizen, PROCON, submission.id, "Em Análise")
    assert fake_db.docs(PROCON.collection)[submission.id]["status"] == "Aberta"


def test_finished_request_can_be_reopened(submissions, fake_db, citizen, admin):
    submission = submissions.submit(citizen, PROCON, PROCON_FORM)
    submissions.change_status(admin, PROCON, submission.id, "Finalizada")
    submissions.change_status(admin, PROCON, submission.id, "Em Análise")
    assert fake_db.docs(PROCON.collection)[submission.id]["status"] == "Em Análise"


def test_domain_staff_can_triage_their_own_domain_only(submissions, fake_db, citizen):
    staff = make_ctx("s1", "procon@example.com", name="Equipe Procon", tipo="Procon")
    submission = submissions.submit(citizen, PROCON, PROCON_FORM)
    submissions.change_status(staff, PROCON, submission.id, "Pendente")
    legal = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    with pytest.raises(PermissionDeniedError):
        submissions.change_status(staff, JURIDICO, legal.id, "Em Análise")


def test_failed_notification_keeps_status_change(submissions, notifications, fake_db, citizen, admin, monkeypatch):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)

    def broken(*args, **kwargs):
        raise StoreError("offline")

    monkeypatch.setattr(notifications, "notify_submitter", broken)
    assert submissions.change_status(admin, JURIDICO, submission.id, "Concluído") is None
    assert fake_db.docs(JURIDICO.collection)[submission.id]["status"] == "Concluído"


def test_append_message_keeps_order_and_existing_messages(submissions, fake_db, citizen, admin):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    texts = ["Recebemos sua solicitação.", "Favor trazer a escritura.", "Atendimento marcado."]
    for text in texts:
        submissions.append_message(admin, JURIDICO, submission.id, text, notify=False)
        stored = Submission.from_doc(fake_db.docs(JURIDICO.collection)[submission.id])
        assert [m.text for m in stored.ordered_messages()] == texts[:len(stored.messages)]

    messages = submissions.get(JURIDICO, submission.id).ordered_messages()
    assert [m.text for m in messages] == texts
    assert all(m.sender == "admin" for m in messages)
    assert [m.timestamp for m in messages] == sorted(m.timestamp for m in messages)
    assert fake_db.docs(NOTIFICATIONS_COLLECTION) == {}


def test_append_message_notifies_by_default(submissions, fake_db, citizen, admin):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    submissions.append_message(admin, JURIDICO, submission.id, "Olá!")
    [notification] = fake_db.docs(NOTIFICATIONS_COLLECTION).values()
    assert notification["submission_id"] == submission.id
    assert "status" not in notification


def test_append_message_rejects_blank_text(submissions, citizen, admin):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    with pytest.raises(ValueError):
        submissions.append_message(admin, JURIDICO, submission.id, "   ")
    assert submissions.get(JURIDICO, submission.id).messages == {}


def test_attach_file_encodes_inline(submissions, citizen, admin):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    attachment = submissions.attach_file(admin, JURIDICO, submission.id, "parecer.pdf", "application/pdf", b"%PDF-1.4")
    assert attachment.data.startswith("data:application/pdf;base64,")
    [stored] = submissions.get(JURIDICO, submission.id).anexos
    assert stored.name == "parecer.pdf"
    assert stored.decode() == b"%PDF-1.4"
    assert stored.sender == "admin"


def test_attach_file_rejects_files_over_limit(submissions, citizen, admin):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    with pytest.raises(AttachmentError):
        submissions.attach_file(admin, JURIDICO, submission.id, "big.bin", "application/octet-stream",
                                b"0" * (5 * 1024 * 1024 + 1))
    assert submissions.get(JURIDICO, submission.id).anexos == []


def test_concurrent_attachments_can_lose_one(submissions, firebase, citizen, admin, monkeypatch):
    """Two uploads racing on the same record: the read-modify-write keeps only the last writer."""
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    original_update = firebase.update_doc
    interleaved = []

    def update_after_concurrent_upload(collection, doc_id, data):
        if not interleaved:
            interleaved.append(True)
            # The second upload reads and writes while the first is still holding its stale copy.
            submissions.attach_file(admin, JURIDICO, submission.id, "b.pdf", "application/pdf", b"B")
        original_update(collection, doc_id, data)

    monkeypatch.setattr(firebase, "update_doc", update_after_concurrent_upload)
    submissions.attach_file(admin, JURIDICO, submission.id, "a.pdf", "application/pdf", b"A")

    assert [a.name for a in submissions.get(JURIDICO, submission.id).anexos] == ["a.pdf"]


def test_prepare_attachments_reports_rejected_files(submissions):
    accepted, rejected = submissions.prepare_attachments([
        ("nota.pdf", "application/pdf", b"pdf"),
        ("foto.png", "image/png", b"png"),
        ("planilha.xlsx", "application/vnd.ms-excel", b"xls"),
        ("enorme.jpg", "image/jpeg", b"0" * (2 * 1024 * 1024 + 1)),
    ])
    assert [a.name for a in accepted] == ["nota.pdf", "foto.png"]
    assert len(rejected) == 2
    assert "planilha.xlsx" in rejected[0]
    assert "enorme.jpg" in rejected[1]


def test_resolve_submitter_profile_prefers_current_profile(submissions, fake_db, citizen):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    fake_db.collection("users").document("u1").update({"phone": "85 98888-1111"})
    assert submissions.resolve_submitter_profile(submission)["phone"] == "85 98888-1111"


def test_resolve_submitter_profile_falls_back_to_snapshot(submissions, fake_db, citizen, monkeypatch):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)
    del fake_db.data["users"]["u1"]
    assert submissions.resolve_submitter_profile(submission)["name"] == "Maria Silva"

    def failing_get(collection, doc_id):
        raise StoreError("offline")

    monkeypatch.setattr(submissions.firebase, "get_doc", failing_get)
    assert submissions.resolve_submitter_profile(submission)["cpf"] == "123.456.789-00"


def test_subscribe_all_is_staff_only(submissions, citizen):
    with pytest.raises(PermissionDeniedError):
        submissions.subscribe_all(citizen, JURIDICO)


def test_council_member_sees_only_own_appointments(submissions, fake_db, citizen, admin):
    for vereador_id, nome in (("1", "José Lima"), ("2", "Rita Alves"), ("1", "José Lima")):
        submissions.submit(citizen, "vereadores", {"vereador_id": vereador_id, "vereador_nome": nome,
                                                   "assunto": "Audiência", "descricao": "Pauta do bairro"})
    vereador = make_ctx("v1", "jose@example.com", name="José Lima", tipo="Vereador")

    with submissions.subscribe_all(vereador, "vereadores") as own:
        assert len(own.items) == 2
        assert {r.dados_solicitacao["vereador_nome"] for r in own.items} == {"José Lima"}
    with submissions.subscribe_all(admin, "vereadores") as everything:
        assert len(everything.items) == 3


def appointment(submissions, citizen, nome):
    return submissions.submit(citizen, VEREADORES, {"vereador_id": nome[:1], "vereador_nome": nome,
                                                    "assunto": "Audiência", "descricao": "Pauta do bairro"})


def test_council_member_cannot_act_on_other_members_requests(submissions, fake_db, citizen):
    ritas = appointment(submissions, citizen, "Rita Alves")
    joses = appointment(submissions, citizen, "José Lima")
    jose = make_ctx("v1", "jose@example.com", name="José Lima", tipo="Vereador")

    with pytest.raises(PermissionDeniedError):
        submissions.get(VEREADORES, ritas.id, jose)
    with pytest.raises(PermissionDeniedError):
        submissions.change_status(jose, VEREADORES, ritas.id, "Cancelado")
    with pytest.raises(PermissionDeniedError):
        submissions.append_message(jose, VEREADORES, ritas.id, "Remarcado.")
    with pytest.raises(PermissionDeniedError):
        submissions.attach_file(jose, VEREADORES, ritas.id, "pauta.pdf", "application/pdf", b"%PDF")

    stored = fake_db.docs(VEREADORES.collection)[ritas.id]
    assert stored["status"] == "Aguardando Confirmação"
    assert stored["messages"] == {}
    assert stored["anexos"] == []

    submissions.change_status(jose, VEREADORES, joses.id, "Agendado")
    assert submissions.get(VEREADORES, joses.id, jose).status == "Agendado"


def test_admin_acts_on_any_council_request(submissions, citizen, admin):
    ritas = appointment(submissions, citizen, "Rita Alves")
    submissions.change_status(admin, VEREADORES, ritas.id, "Agendado")
    assert submissions.get(VEREADORES, ritas.id, admin).status == "Agendado"


def test_staff_attachments_stay_within_the_record_size(submissions, fake_db, citizen, admin):
    submission = submissions.submit(citizen, JURIDICO, LEGAL_AID)

    with pytest.raises(AttachmentError, match="0.7MB"):
        submissions.attach_file(admin, JURIDICO, submission.id, "laudo.pdf", "application/pdf", b"x" * 2 * 1024 * 1024)

    submissions.attach_file(admin, JURIDICO, submission.id, "a.pdf", "application/pdf", b"x" * 600 * 1024)
    with pytest.raises(AttachmentError, match="restam cerca de"):
        submissions.attach_file(admin, JURIDICO, submission.id, "b.pdf", "application/pdf", b"x" * 600 * 1024)

    stored = fake_db.docs(JURIDICO.collection)[submission.id]
    assert [a["name"] for a in stored["anexos"]] == ["a.pdf"]
    assert document_size(stored) <= MAX_DOCUMENT_BYTES


def test_citizen_attachments_share_the_record_budget(submissions):
    chunk = b"x" * 400 * 1024
    accepted, rejected = submissions.prepare_attachments([
        ("um.pdf", "application/pdf", chunk),
        ("dois.pdf", "application/pdf", chunk),
        ("tres.png", "image/png", b"png"),
    ])
    assert [a.name for a in accepted] == ["um.pdf", "tres.png"]
    assert len(rejected) == 1 and "dois.pdf" in rejected[0]


def test_oversized_submission_is_not_stored(submissions, fake_db, citizen):
    chunk = b"x" * 400 * 1024
    attachments = []
    for name in ("um.pdf", "dois.pdf"):
        accepted, _ = submissions.prepare_attachments([(name, "application/pdf", chunk)])
        attachments += accepted

    with pytest.raises(AttachmentError):
        submissions.submit(citizen, PROCON, PROCON_FORM, attachments=attachments)
    assert fake_db.docs(PROCON.collection) == {}
