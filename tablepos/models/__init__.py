from tablepos.models.category import Category
from tablepos.models.product import Product
from tablepos.models.modifier_group import ModifierGroup
from tablepos.models.modifier_option import ModifierOption
from tablepos.models.modifier_assignment import ModifierAssignment
from tablepos.models.setting import Setting
from tablepos.models.order import Order
from tablepos.models.order_item import OrderItem
from tablepos.models.payment import Payment
