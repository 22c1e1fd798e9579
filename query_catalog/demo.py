"""Demo sales dataset for in-memory DuckDB runs and tests.

The table mirrors the wide ``sales_data_sample`` order-line table the bundled
catalog is written against. Rows are generated deterministically.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List

SALES_TABLE = "sales_data_sample"

SALES_COLUMNS = (
    ("ORDERNUMBER", "INTEGER"),
    ("QUANTITYORDERED", "INTEGER"),
    ("PRICEEACH", "DECIMAL(10, 2)"),
    ("ORDERLINENUMBER", "INTEGER"),
    ("SALES", "DECIMAL(12, 2)"),
    ("ORDERDATE", "DATE"),
    ("STATUS", "VARCHAR"),
    ("QTR_ID", "INTEGER"),
    ("MONTH_ID", "INTEGER"),
    ("YEAR_ID", "INTEGER"),
    ("PRODUCTLINE", "VARCHAR"),
    ("MSRP", "INTEGER"),
    ("PRODUCTCODE", "VARCHAR"),
    ("CUSTOMERNAME", "VARCHAR"),
    ("PHONE", "VARCHAR"),
    ("ADDRESSLINE1", "VARCHAR"),
    ("ADDRESSLINE2", "VARCHAR"),
    ("CITY", "VARCHAR"),
    ("STATE", "VARCHAR"),
    ("POSTALCODE", "VARCHAR"),
    ("COUNTRY", "VARCHAR"),
    ("TERRITORY", "VARCHAR"),
    ("CONTACTLASTNAME", "VARCHAR"),
    ("CONTACTFIRSTNAME", "VARCHAR"),
    ("DEALSIZE", "VARCHAR"),
)

# name, phone, address1, address2, city, state, postal code, country, territory, last, first
_CUSTOMERS = (
    ("Land of Toys Inc.", "2125557818", "897 Long Airport Avenue", None,
     "NYC", "NY", "10022", "USA", "NA", "Yu", "Kwai"),
    ("Reims Collectables", "26.47.1555", "59 rue de l'Abbaye", None,
     "Reims", None, "51100", "France", "EMEA", "Henriot", "Paul"),
    ("Mini Gifts Distributors Ltd.", "4155551450", "5677 Strong St.", None,
     "San Rafael", "CA", "97562", "USA", "NA", "Nelson", "Valarie"),
    ("Australian Collectors, Co.", "03 9520 4555", "636 St Kilda Road", "Level 3",
     "Melbourne", "Victoria", "3004", "Australia", "APAC", "Ferguson", "Peter"),
    ("Corporate Gift Ideas Co.", "6505551386", "7734 Strong St.", None,
     "San Francisco", "CA", "94217", "USA", "NA", "Brown", "Julie"),
    ("Euro Shopping Channel", "(91) 555 94 44", "C/ Moralzarzal, 86", None,
     "Madrid", None, "28034", "Spain", "EMEA", "Freyre", "Diego"),
    ("Toys4GrownUps.com", "6265557265", "78934 Hillside Dr.", None,
     "Pasadena", "CA", "90003", "USA", "NA", "Young", "Julie"),
    ("Dragon Souveniers, Ltd.", "+65 221 7555", "Bronz Sok.", "Bronz Apt. 3/6 Tesvikiye",
     "Singapore", None, "079903", "Singapore", "Japan", "Natividad", "Eric"),
    ("Technics Stores Inc.", "6505556809", "9408 Furth Circle", None,
     "Burlingame", "CA", "94217", "USA", "NA", "Hirano", "Juri"),
    ("La Rochelle Gifts", "40.67.8555", "67, rue des Cinquante Otages", None,
     "Nantes", None, "44000", "France", "EMEA", "Labrune", "Janine"),
)

# product line, product code, MSRP
_PRODUCTS = (
    ("Classic Cars", "S10_1949", 214),
    ("Motorcycles", "S10_1678", 95),
    ("Planes", "S18_1662", 157),
    ("Ships", "S18_3029", 86),
    ("Trains", "S18_3259", 100),
    ("Trucks and Buses", "S18_4600", 121),
    ("Vintage Cars", "S18_1749", 170),
)

_STATUSES = (
    "Shipped", "Shipped", "Shipped", "Shipped", "Cancelled",
    "Shipped", "On Hold", "Shipped", "Disputed", "In Process",
    "Shipped", "Resolved",
)

_FIRST_ORDER_DATE = date(2003, 1, 6)


def deal_size(sales: Decimal) -> str:
    """Deal size bucket used by the dataset."""
    if sales < 3000:
        return "Small"
    if sales < 7000:
        return "Medium"
    return "Large"


def make_sales_row(
    order_number: int,
    customer_index: int = 0,
    product_index: int = 0,
    quantity: int = 30,
    price_each: Decimal = Decimal("100.00"),
    order_date: date = _FIRST_ORDER_DATE,
    status: str = "Shipped",
    line_number: int = 1,
    **overrides: Any,
) -> Dict[str, Any]:
    """Build one complete order line; ``overrides`` replace computed columns."""
    customer = _CUSTOMERS[customer_index % len(_CUSTOMERS)]
    product = _PRODUCTS[product_index % len(_PRODUCTS)]
    sales = (price_each * quantity).quantize(Decimal("0.01"))
    row = {
        "ORDERNUMBER": order_number,
        "QUANTITYORDERED": quantity,
        "PRICEEACH": price_each,
        "ORDERLINENUMBER": line_number,
        "SALES": sales,
        "ORDERDATE": order_date,
        "STATUS": status,
        "QTR_ID": (order_date.month - 1) // 3 + 1,
        "MONTH_ID": order_date.month,
        "YEAR_ID": order_date.year,
        "PRODUCTLINE": product[0],
        "MSRP": product[2],
        "PRODUCTCODE": product[1],
        "CUSTOMERNAME": customer[0],
        "PHONE": customer[1],
        "ADDRESSLINE1": customer[2],
        "ADDRESSLINE2": customer[3],
        "CITY": customer[4],
        "STATE": customer[5],
        "POSTALCODE": customer[6],
        "COUNTRY": customer[7],
        "TERRITORY": customer[8],
        "CONTACTLASTNAME": customer[9],
        "CONTACTFIRSTNAME": customer[10],
        "DEALSIZE": deal_size(sales),
    }
    row.update(overrides)
    return row


def demo_rows(count: int = 48) -> List[Dict[str, Any]]:
    """Deterministic demo order lines from January 2003 to mid 2004."""
    rows = []
    for i in range(count):
        product_index = (i * 3) % len(_PRODUCTS)
        msrp = Decimal(_PRODUCTS[product_index][2])
        discount = Decimal(80 + (i * 13) % 21) / Decimal(100)
        rows.append(
            make_sales_row(
                order_number=10100 + i // 2,
                customer_index=i % len(_CUSTOMERS),
                product_index=product_index,
                quantity=20 + (i * 7) % 31,
                price_each=(msrp * discount).quantize(Decimal("0.01")),
                order_date=_FIRST_ORDER_DATE + timedelta(days=23 * (i // 2)),
                status=_STATUSES[(i // 2) % len(_STATUSES)],
                line_number=i % 2 + 1,
            )
        )
    return rows


def create_sales_table(connection) -> None:
    """Create the empty sales table."""
    columns = ",\n            ".join(f"{name} {sql_type}" for name, sql_type in SALES_COLUMNS)
    connection.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {SALES_TABLE} (
            {columns}
        )
        """
    )


def insert_sales_rows(connection, rows: List[Dict[str, Any]]) -> None:
    """Insert complete rows (dicts keyed by column name)."""
    names = [name for name, _ in SALES_COLUMNS]
    markers = ", ".join("?" for _ in names)
    sql = f"INSERT INTO {SALES_TABLE} ({', '.join(names)}) VALUES ({markers})"
    values = [[row.get(name) for name in names] for row in rows]
    if values:
        connection.executemany(sql, values)


def seed_demo_data(connection) -> None:
    """(Re)create the demo sales table with its generated rows."""
    create_sales_table(connection)
    connection.execute(f"DELETE FROM {SALES_TABLE}")
    insert_sales_rows(connection, demo_rows())
