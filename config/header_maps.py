"""
Known header vocabularies for accounting exports.

Used by format detection (vendor refinement, target collection guess)
and by field auto-matching (vendor maps, synonyms).
"""

from models.import_batch import SourceFormat

# =============================================================================
# VENDOR HEADER MAPS
# =============================================================================
# Header as exported by the package → target field it carries.
# Keys are written in normalized form (lowercase words).

FOUNDATION_HEADERS = {
    "vendor number": "vendorCode",
    "vendor name": "name",
    "invoice number": "invoiceNumber",
    "invoice date": "invoiceDate",
    "invoice amount": "amount",
    "due date": "dueDate",
    "job number": "jobCode",
    "cost code": "costCode",
    "cost type": "costType",
    "description": "description",
    "po number": "poNumber",
    "retention": "retentionAmount",
    "net amount": "netAmount",
    "check number": "checkNumber",
    "check date": "checkDate",
    "check amount": "checkAmount",
}

QUICKBOOKS_HEADERS = {
    "txn type": "transactionType",
    "date": "date",
    "num": "referenceNumber",
    "name": "name",
    "memo": "description",
    "account": "accountName",
    "debit": "debit",
    "credit": "credit",
    "amount": "amount",
    "balance": "balance",
    "item": "item",
    "quantity": "quantity",
    "sales price": "unitPrice",
    "class": "class",
    "customer": "customerName",
    "vendor": "vendorName",
}

SAGE_HEADERS = {
    "account number": "accountNumber",
    "account description": "accountDescription",
    "journal entry": "journalEntry",
    "posting date": "date",
    "source": "source",
    "reference": "referenceNumber",
    "debit amount": "debit",
    "credit amount": "credit",
    "job": "jobCode",
    "phase": "phase",
    "cost code": "costCode",
    "vendor id": "vendorCode",
    "vendor name": "vendorName",
    "invoice no": "invoiceNumber",
    "inv date": "invoiceDate",
    "gross amount": "amount",
}

# Checked in this order; a later package must match strictly more headers to win
VENDOR_HEADER_MAPS = {
    SourceFormat.FOUNDATION: FOUNDATION_HEADERS,
    SourceFormat.QB: QUICKBOOKS_HEADERS,
    SourceFormat.SAGE: SAGE_HEADERS,
}

# Minimum known headers present before a file is relabelled as a vendor export
VENDOR_MIN_HEADER_MATCHES = 3


# =============================================================================
# COLLECTION SIGNATURES
# =============================================================================
# Ties between collections go to the one listed first.

COLLECTION_SIGNATURES = {
    "ap/vendor": ["vendor name", "vendor number", "vendor code", "tax id", "vendor type", "payment terms"],
    "ap/invoice": ["invoice number", "invoice date", "vendor", "amount", "due date"],
    "gl/account": ["account number", "account name", "account type", "normal balance"],
    "gl/journalEntry": ["journal entry", "posting date", "debit", "credit"],
    "job/job": ["job number", "job name", "contract amount", "start date"],
    "entity/entity": ["entity name", "entity type", "tax id", "ein"],
    "ar/customer": ["customer name", "customer number", "billing address"],
    "ar/invoice": ["invoice number", "customer", "invoice date", "amount"],
    "payroll/employee": ["employee name", "employee id", "hire date", "pay rate"],
}

# A collection needs at least this many signature fields present
COLLECTION_MIN_MATCHES = 2


# =============================================================================
# FIELD SYNONYMS
# =============================================================================
# Compact header (normalized, no spaces) → compact target names it may mean.

FIELD_SYNONYMS = {
    "amt": ["amount"],
    "total": ["amount", "totalamount"],
    "invnum": ["invoicenumber"],
    "invno": ["invoicenumber"],
    "invoiceno": ["invoicenumber"],
    "invoicenum": ["invoicenumber"],
    "inv": ["invoicenumber"],
    "invdate": ["invoicedate"],
    "qty": ["quantity"],
    "desc": ["description"],
    "memo": ["description"],
    "vendno": ["vendorcode"],
    "vendnum": ["vendorcode"],
    "vendorno": ["vendorcode"],
    "vendornum": ["vendorcode"],
    "vendorid": ["vendorcode"],
    "vendor": ["vendorname", "vendorcode"],
    "ein": ["taxid"],
    "tin": ["taxid"],
    "fein": ["taxid"],
    "po": ["ponumber"],
    "ponum": ["ponumber"],
    "pono": ["ponumber"],
    "chk": ["checknumber"],
    "chknum": ["checknumber"],
    "checkno": ["checknumber"],
    "acct": ["accountnumber", "accountname"],
    "acctnum": ["accountnumber"],
    "acctno": ["accountnumber"],
    "ref": ["referencenumber"],
    "refnum": ["referencenumber"],
    "num": ["referencenumber"],
    "job": ["jobcode"],
    "jobno": ["jobcode"],
    "jobnum": ["jobcode"],
    "custname": ["customername"],
    "cust": ["customername"],
    "duedt": ["duedate"],
    "dt": ["date"],
}


# =============================================================================
# TRANSFORM HINTS
# =============================================================================
# Words in a target field name that suggest a value transform.

DATE_FIELD_HINTS = ("date",)
NUMBER_FIELD_HINTS = ("amount", "cost", "price", "total", "balance", "debit", "credit", "rate")
