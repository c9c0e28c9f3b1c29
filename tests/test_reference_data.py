from ledger_api.schemas.banking import is_valid_iban


async def test_list_journals_sorted_by_code(client, books, headers):
    response = await client.get(books.url("/journals"), headers=headers)

    assert response.status_code == 200
    assert [j["code"] for j in response.json()] == ["BAN", "OD"]


async def test_create_journal_normalizes_code(client, books, headers):
    response = await client.post(
        books.url("/journals"), json={"code": " ven ", "name": "Ventes", "type": "SALES"}, headers=headers
    )

    assert response.status_code == 201, response.text
    assert response.json()["code"] == "VEN"
    assert response.json()["type"] == "SALES"


async def test_duplicate_journal_code(client, books, headers):
    response = await client.post(books.url("/journals"), json={"code": "ban", "name": "Banque 2"}, headers=headers)

    assert response.status_code == 409
    assert response.json()["title"] == "JOURNAL_CODE_EXISTS"


async def test_unknown_journal_type(client, books, headers):
    response = await client.post(
        books.url("/journals"), json={"code": "XX", "name": "Other", "type": "PAYROLL"}, headers=headers
    )

    assert response.status_code == 400
    assert response.json()["title"] == "VALIDATION_ERROR"


async def test_create_account(client, books, headers):
    response = await client.post(
        books.url("/accounts"), json={"code": "401000", "name": "Fournisseurs", "type": "LIABILITY"}, headers=headers
    )

    assert response.status_code == 201
    codes = [a["code"] for a in (await client.get(books.url("/accounts"), headers=headers)).json()]
    assert codes == ["401000", "512000", "606000", "706000"]


async def test_account_code_must_be_numeric(client, books, headers):
    response = await client.post(
        books.url("/accounts"), json={"code": "AB12", "name": "Bad", "type": "ASSET"}, headers=headers
    )

    assert response.status_code == 400


async def test_duplicate_account_code(client, books, headers):
    response = await client.post(
        books.url("/accounts"), json={"code": "512000", "name": "Banque bis", "type": "ASSET"}, headers=headers
    )

    assert response.status_code == 409
    assert response.json()["title"] == "ACCOUNT_CODE_EXISTS"


async def test_projects(client, books, headers):
    created = await client.post(books.url("/projects"), json={"code": "P-02", "name": "Winter fair"}, headers=headers)
    duplicate = await client.post(books.url("/projects"), json={"code": "P-01", "name": "Again"}, headers=headers)
    listed = await client.get(books.url("/projects"), headers=headers)

    assert created.status_code == 201
    assert duplicate.status_code == 409
    assert duplicate.json()["title"] == "PROJECT_CODE_EXISTS"
    assert [p["code"] for p in listed.json()] == ["P-01", "P-02"]


async def test_create_bank_account(client, books, headers):
    response = await client.post(
        books.url("/bank-accounts"),
        json={"name": "Savings", "iban": "gb82 west 1234 5698 7654 32", "account_id": books.accounts["bank"]},
        headers=headers,
    )

    assert response.status_code == 201, response.text
    assert response.json()["iban"] == "GB82WEST12345698765432"


async def test_bank_account_with_invalid_iban(client, books, headers):
    response = await client.post(
        books.url("/bank-accounts"),
        json={"name": "Savings", "iban": "GB00WEST12345698765432", "account_id": books.accounts["bank"]},
        headers=headers,
    )

    assert response.status_code == 400


async def test_bank_account_needs_own_ledger_account(client, books, headers):
    response = await client.post(
        books.url("/bank-accounts"),
        json={"name": "Borrowed", "account_id": books.other_account_id},
        headers=headers,
    )

    assert response.status_code == 404
    assert response.json()["title"] == "ACCOUNT_NOT_FOUND"


async def test_duplicate_bank_account_name(client, books, headers):
    response = await client.post(
        books.url("/bank-accounts"),
        json={"name": "Main account", "account_id": books.accounts["bank"]},
        headers=headers,
    )

    assert response.status_code == 409
    assert response.json()["title"] == "BANK_ACCOUNT_NAME_EXISTS"


async def test_reference_data_is_tenant_scoped(client, books, make_headers):
    response = await client.get(
        books.url("/accounts", books.other_organization_id), headers=make_headers(books.other_organization_id)
    )

    assert [a["id"] for a in response.json()] == [books.other_account_id]


def test_iban_checksum():
    assert is_valid_iban("FR76 3000 6000 0112 3456 7890 189")
    assert not is_valid_iban("FR76 3000 6000 0112 3456 7890 188")
    assert not is_valid_iban("FR76")
