# customers.py - 顧客マスタの管理
import logging

from sqlalchemy.exc import IntegrityError

from auth import AuthenticatedContext
from errors import NotFoundError, ValidationError
from models import Customer
from policy import Action, authorize
from repositories import UnitOfWork
from schemas import CustomerInput, CustomerListQuery, parse_payload

logger = logging.getLogger(__name__)


def _customer_values(data: CustomerInput) -> dict:
    # 任意項目の空文字は NULL として保存
    return {
        "name": data.name,
        "company_name": data.company_name,
        "phone": data.phone or None,
        "email": data.email or None,
        "address": data.address or None,
        "notes": data.notes or None,
    }


class CustomerService:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def _load(self, customer_id: int) -> Customer:
        customer = self.uow.customers.get(customer_id)
        if customer is None:
            raise NotFoundError("顧客が見つかりません")
        return customer

    def search(self, ctx: AuthenticatedContext, params: dict):
        authorize(ctx, Action.CUSTOMER_MANAGE)
        query = parse_payload(CustomerListQuery, params)
        customers, total = self.uow.customers.search(query.keyword, query.page, query.per_page)
        return customers, total, query

    def get(self, ctx: AuthenticatedContext, customer_id: int) -> Customer:
        authorize(ctx, Action.CUSTOMER_MANAGE)
        return self._load(customer_id)

    def create(self, ctx: AuthenticatedContext, payload: dict) -> Customer:
        authorize(ctx, Action.CUSTOMER_MANAGE)
        data = parse_payload(CustomerInput, payload)

        customer = Customer(**_customer_values(data))
        with self.uow:
            self.uow.customers.add(customer)
            self.uow.commit()
        logger.info("customer created id=%s", customer.id)
        return customer

    def update(self, ctx: AuthenticatedContext, customer_id: int, payload: dict) -> Customer:
        authorize(ctx, Action.CUSTOMER_MANAGE)
        data = parse_payload(CustomerInput, payload)
        customer = self._load(customer_id)

        with self.uow:
            for field, value in _customer_values(data).items():
                setattr(customer, field, value)
            self.uow.commit()
        return customer

    def delete(self, ctx: AuthenticatedContext, customer_id: int) -> None:
        authorize(ctx, Action.CUSTOMER_MANAGE)
        customer = self._load(customer_id)

        # 使用中チェック
        if self.uow.customers.is_referenced(customer_id):
            raise ValidationError("この顧客は日報で使用されているため削除できません")

        with self.uow:
            try:
                self.uow.customers.delete(customer)
            except IntegrityError:
                # チェック後に訪問記録が追加された場合は外部キー制約で弾かれる
                self.uow.rollback()
                raise ValidationError("この顧客は日報で使用されているため削除できません")
            self.uow.commit()
        logger.info("customer deleted id=%s", customer_id)
