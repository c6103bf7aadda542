from datetime import timedelta

from fastapi.testclient import TestClient

from circulation.core.clock import utcnow
from circulation.db.models import LoanStatus


#el member solo ve sus préstamos
def test_my_loans_lists_only_own(client: TestClient, member, make_user, make_book, make_loan):
    due = utcnow() + timedelta(days=7)
    mine = make_loan(member["id"], make_book().id, due_at=due)
    other = make_user()
    make_loan(other.id, make_book().id, due_at=due)

    resp = client.get("/api/v1/loans/my-loans", headers=member["headers"])

    assert resp.status_code == 200, resp.text
    assert [loan["id"] for loan in resp.json()] == [mine.id]


def test_my_loans_active_only(client: TestClient, member, make_book, make_loan):
    due = utcnow() + timedelta(days=7)
    active = make_loan(member["id"], make_book().id, due_at=due)
    make_loan(member["id"], make_book(total_copies=2).id, due_at=due, status=LoanStatus.RETURNED)

    all_loans = client.get("/api/v1/loans/my-loans", headers=member["headers"]).json()
    active_loans = client.get("/api/v1/loans/my-loans?active_only=true", headers=member["headers"]).json()

    assert len(all_loans) == 2
    assert [loan["id"] for loan in active_loans] == [active.id]


def test_member_cannot_see_other_members_loan(client: TestClient, member, make_user, make_book, make_loan):
    other = make_user()
    loan = make_loan(other.id, make_book().id, due_at=utcnow() + timedelta(days=7))

    resp = client.get(f"/api/v1/loans/{loan.id}", headers=member["headers"])

    assert resp.status_code == 404


def test_librarian_can_see_any_loan(client: TestClient, librarian_headers, make_user, make_book, make_loan):
    patron = make_user()
    loan = make_loan(patron.id, make_book().id, due_at=utcnow() + timedelta(days=7))

    resp = client.get(f"/api/v1/loans/{loan.id}", headers=librarian_headers)

    assert resp.status_code == 200
    assert resp.json()["patron_id"] == patron.id


def test_librarian_filters_loans(client: TestClient, librarian_headers, make_user, make_book, make_loan):
    patron = make_user()
    book = make_book(total_copies=3)
    active = make_loan(patron.id, book.id, due_at=utcnow() + timedelta(days=7))
    overdue = make_loan(make_user().id, book.id, due_at=utcnow() - timedelta(days=2), status=LoanStatus.OVERDUE)
    make_loan(patron.id, make_book().id, due_at=utcnow() + timedelta(days=7))

    by_status = client.get("/api/v1/loans/?status=overdue", headers=librarian_headers).json()
    assert [loan["id"] for loan in by_status] == [overdue.id]

    by_patron_and_book = client.get(
        f"/api/v1/loans/?patron_id={patron.id}&book_id={book.id}",
        headers=librarian_headers,
    ).json()
    assert [loan["id"] for loan in by_patron_and_book] == [active.id]


def test_member_cannot_list_all_loans(client: TestClient, member):
    resp = client.get("/api/v1/loans/", headers=member["headers"])
    assert resp.status_code == 403


def test_loans_require_token(client: TestClient):
    resp = client.get("/api/v1/loans/my-loans")
    assert resp.status_code == 401
