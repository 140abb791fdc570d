"""可见性测试：角色范围、共享覆盖层与可见共享列表缓存。"""

import pytest

from app.packages.portal.core.enums import RoleEnum
from app.packages.portal.core.exceptions import PermissionDeniedError
from app.packages.portal.core.principal import Principal
from app.packages.portal.models import Folder, SharedFolder
from app.packages.portal.services.path_resolver import PathResolver
from app.packages.portal.services.document_service import document_service
from app.packages.portal.services.share_service import share_service
from app.packages.portal.services.tree_service import folder_service
from app.packages.portal.services.visibility_service import ownership_resolver, visibility_resolver


@pytest.fixture()
def db(db_session_fixture):
    return db_session_fixture


@pytest.fixture()
def tree(db, storage, acme):
    """Legal 下的 Contracts/Signed 与 Internal，Sales 下的 Pipeline，各放一份文档。"""
    contracts = folder_service.create_folder(db, storage, name="Contracts", service_id=acme["legal"].id)
    signed = folder_service.create_folder(db, storage, name="Signed", parent_id=contracts.id)
    internal = folder_service.create_folder(db, storage, name="Internal", service_id=acme["legal"].id)
    pipeline = folder_service.create_folder(db, storage, name="Pipeline", service_id=acme["sales"].id)
    docs = {
        "nda": document_service.create_document(db, storage, name="NDA.pdf", data=b"nda", folder_id=signed.id),
        "memo": document_service.create_document(db, storage, name="memo.txt", data=b"m", folder_id=internal.id),
        "deal": document_service.create_document(db, storage, name="deal.xlsx", data=b"d", folder_id=pipeline.id),
    }
    return {"contracts": contracts, "signed": signed, "internal": internal, "pipeline": pipeline, "docs": docs}


def test_principal_claims_round_trip(principal_factory):
    principal = principal_factory(RoleEnum.AGENT, "sales", user_id=7, can_view_all_services=True)
    assert Principal.from_claims(principal.to_claims()) == principal
    with pytest.raises(ValueError):
        Principal.from_claims({"role": "agent"})
    with pytest.raises(ValueError):
        Principal.from_claims({"user_id": 1, "role": "janitor"})


def test_service_access_by_role(acme, principal_factory):
    legal, sales, research = acme["legal"], acme["sales"], acme["research"]
    agent = principal_factory(RoleEnum.AGENT, "legal")
    wide_agent = principal_factory(RoleEnum.AGENT, "legal", can_view_all_services=True)
    admin = principal_factory(RoleEnum.ADMIN, None)
    root = principal_factory(RoleEnum.SUPER_ADMIN, None)

    assert ownership_resolver.can_access_service(agent, legal)
    assert not ownership_resolver.can_access_service(agent, sales)
    assert ownership_resolver.can_access_service(wide_agent, sales)
    assert ownership_resolver.can_access_service(admin, sales)
    assert not ownership_resolver.can_access_service(admin, research)
    assert not ownership_resolver.can_access_service(wide_agent, research)
    assert ownership_resolver.can_access_service(root, research)
    assert ownership_resolver.can_access_service(None, research)


def test_management_is_admin_only(acme, principal_factory):
    enterprise_id = acme["enterprise"].id
    assert ownership_resolver.can_manage_enterprise(principal_factory(RoleEnum.ADMIN, None), enterprise_id)
    assert not ownership_resolver.can_manage_enterprise(principal_factory(RoleEnum.AGENT), enterprise_id)
    assert not ownership_resolver.can_manage_enterprise(
        principal_factory(RoleEnum.ADMIN, None), acme["globex"].id
    )
    assert ownership_resolver.can_manage_enterprise(
        principal_factory(RoleEnum.SUPER_ADMIN, None), acme["globex"].id
    )


def test_agent_sees_only_own_service_without_shares(db, tree, principal_factory):
    sales_agent = principal_factory(RoleEnum.AGENT, "sales")
    assert visibility_resolver.can_view_folder(db, sales_agent, tree["pipeline"])
    assert not visibility_resolver.can_view_folder(db, sales_agent, tree["contracts"])
    assert not visibility_resolver.can_view_document(db, sales_agent, tree["docs"]["nda"])
    with pytest.raises(PermissionDeniedError):
        folder_service.get_folder(db, tree["contracts"].id, sales_agent)


def test_enterprise_share_exposes_subtree_only(db, tree, principal_factory):
    share_service.share_folder(db, tree["contracts"].id, "enterprise")
    sales_agent = principal_factory(RoleEnum.AGENT, "sales")

    assert visibility_resolver.can_view_folder(db, sales_agent, tree["contracts"])
    assert visibility_resolver.can_view_folder(db, sales_agent, tree["signed"])
    assert visibility_resolver.can_view_document(db, sales_agent, tree["docs"]["nda"])
    assert not visibility_resolver.can_view_folder(db, sales_agent, tree["internal"])
    root = db.get(type(tree["contracts"]), tree["contracts"].parent_id)
    assert not visibility_resolver.can_view_folder(db, sales_agent, root)


def test_enterprise_share_does_not_cross_enterprises(db, tree, acme, principal_factory):
    share_service.share_folder(db, tree["contracts"].id, "enterprise")
    outsider = principal_factory(RoleEnum.AGENT, "research", enterprise="globex")
    outsider_admin = principal_factory(RoleEnum.ADMIN, None, enterprise="globex")
    assert not visibility_resolver.can_view_folder(db, outsider, tree["contracts"])
    assert not visibility_resolver.can_view_folder(db, outsider_admin, tree["contracts"])


def test_services_share_grants_listed_services(db, tree, acme, principal_factory):
    share = share_service.share_folder(db, tree["contracts"].id, "services", [acme["sales"].id])
    sales_agent = principal_factory(RoleEnum.AGENT, "sales")
    assert share.service_ids == [acme["sales"].id]
    assert visibility_resolver.can_view_folder(db, sales_agent, tree["signed"])

    share_service.update_share(db, None, share.id, service_ids=[])
    assert not visibility_resolver.can_view_folder(db, sales_agent, tree["signed"])


def test_services_share_ignores_foreign_service_ids(db, tree, acme):
    share = share_service.share_folder(
        db, tree["contracts"].id, "services", [acme["sales"].id, acme["research"].id]
    )
    assert share.service_ids == [acme["sales"].id]


def test_document_listing_applies_visibility(db, tree, principal_factory):
    sales_agent = principal_factory(RoleEnum.AGENT, "sales")
    admin = principal_factory(RoleEnum.ADMIN, None)

    listed = document_service.list_documents(db, principal=sales_agent)
    assert [d.name for d in listed["items"]] == ["deal.xlsx"]

    share_service.share_folder(db, tree["contracts"].id, "enterprise")
    listed = document_service.list_documents(db, principal=sales_agent)
    assert {d.name for d in listed["items"]} == {"deal.xlsx", "NDA.pdf"}
    assert listed["total"] == 2

    assert document_service.list_documents(db, principal=admin)["total"] == 3
    outsider = principal_factory(RoleEnum.ADMIN, None, enterprise="globex")
    assert document_service.list_documents(db, principal=outsider)["total"] == 0


def test_agent_without_service_sees_nothing(db, tree, acme):
    orphan = Principal(id=9, role=RoleEnum.AGENT, enterprise_id=acme["enterprise"].id)
    assert document_service.list_documents(db, principal=orphan)["total"] == 0


def test_resolve_visible_by_role(db, tree, acme, principal_factory):
    share_service.share_folder(db, tree["contracts"].id, "services", [acme["legal"].id])
    share_service.share_folder(db, tree["pipeline"].id, "enterprise")

    sales_agent = principal_factory(RoleEnum.AGENT, "sales", user_id=11)
    admin = principal_factory(RoleEnum.ADMIN, None, user_id=12)
    root = principal_factory(RoleEnum.SUPER_ADMIN, None, user_id=13)

    assert [s["name"] for s in visibility_resolver.resolve_visible(db, sales_agent)] == ["Pipeline"]
    assert {s["name"] for s in visibility_resolver.resolve_visible(db, admin)} == {"Contracts", "Pipeline"}
    assert len(visibility_resolver.resolve_visible(db, root)) == 2


def test_resolve_visible_is_cached_until_shares_change(db, tree, principal_factory):
    admin = principal_factory(RoleEnum.ADMIN, None)
    share = share_service.share_folder(db, tree["contracts"].id, "enterprise")
    assert visibility_resolver.resolve_visible(db, admin)[0]["name"] == "Contracts"

    # 绕过服务层直接改库：序号未变，缓存仍然生效
    db.query(SharedFolder).filter(SharedFolder.id == share.id).update({"name": "Stale"})
    db.commit()
    assert visibility_resolver.resolve_visible(db, admin)[0]["name"] == "Contracts"

    share_service.update_share(db, None, share.id, visibility="enterprise")
    assert visibility_resolver.resolve_visible(db, admin)[0]["name"] == "Stale"


@pytest.fixture()
def cyclic_pair(db, acme):
    """Legal 下两个互为父节点的文件夹，用于验证非严格的祖先遍历能终止。"""
    x = Folder(name="X", service_id=acme["legal"].id)
    db.add(x)
    db.flush()
    y = Folder(name="Y", service_id=acme["legal"].id, parent_id=x.id)
    db.add(y)
    db.flush()
    x.parent_id = y.id
    db.commit()
    return x, y


def test_visibility_walk_terminates_on_cycle(db, acme, cyclic_pair, principal_factory):
    x, y = cyclic_pair
    outsider = principal_factory(RoleEnum.AGENT, "sales", user_id=21)

    assert visibility_resolver.can_view_folder(db, outsider, x) is False
    assert visibility_resolver.can_view_folder(db, principal_factory(), x) is True

    share_service.share_folder(db, y.id, "enterprise")
    assert visibility_resolver.can_view_folder(db, outsider, x) is True


def test_locate_terminates_on_cycle(db, storage, cyclic_pair):
    x, _ = cyclic_pair
    path = PathResolver(db, storage).locate(x)
    assert path.startswith("enterprises/acme/legal/")


def test_resolve_visible_reflects_share_root_rename(db, storage, tree, principal_factory):
    admin = principal_factory(RoleEnum.ADMIN, None)
    share_service.share_folder(db, tree["contracts"].id, "enterprise")
    assert visibility_resolver.resolve_visible(db, admin)[0]["name"] == "Contracts"

    folder_service.rename_folder(db, storage, tree["contracts"].id, "Agreements")
    assert visibility_resolver.resolve_visible(db, admin)[0]["name"] == "Agreements"
