"""
Order Service / エラー定義

注文 Saga の必須ステップが失敗した場合に送出される型付きエラー。
API 層はこの型で HTTP ステータスを振り分ける。
ベストエフォートのステップ(クーポン消費・カート削除・ファクト発行)は
ここで定義したエラーを呼び出し元へは伝播させない。
"""

from uuid import UUID


class OrderError(Exception):
    """注文サービスのエラー基底クラス"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        # Saga 実行中に失敗した場合、その時点までのステップログを保持する
        self.saga_log: list[dict] = []


class EmptyCart(OrderError):
    def __init__(self, user_id: UUID) -> None:
        super().__init__("Cart is empty")
        self.user_id = user_id


class InsufficientStock(OrderError):
    def __init__(self, product_id: UUID) -> None:
        super().__init__(f"Insufficient stock for product {product_id}")
        self.product_id = product_id


class InvalidCoupon(OrderError):
    pass


class OrderNotFound(OrderError):
    """注文が無い、または呼び出し元の注文ではない (両者を区別しない)"""

    def __init__(self, order_ref: UUID | str) -> None:
        super().__init__(f"Order {order_ref} not found")
        self.order_ref = order_ref


class InvalidOrderState(OrderError):
    def __init__(self, order_id: UUID, status: str) -> None:
        super().__init__("Order cannot be cancelled in its current state")
        self.order_id = order_id
        self.status = status


class TransientDependencyFailure(OrderError):
    """外部サービス呼び出しの通信失敗・タイムアウト"""

    def __init__(self, dependency: str, detail: str) -> None:
        super().__init__(f"{dependency} unavailable: {detail}")
        self.dependency = dependency
        self.detail = detail


class DuplicateOrderNumber(OrderError):
    def __init__(self, order_number: str) -> None:
        super().__init__(f"Order number {order_number} already exists")
        self.order_number = order_number


class ConcurrencyConflict(OrderError):
    """楽観的ロックの競合: 読み込み後に別のリクエストが注文を更新した"""

    def __init__(self, order_id: UUID) -> None:
        super().__init__(f"Order {order_id} was modified concurrently")
        self.order_id = order_id
