"""Report text builders shared by the settlement tests."""

HEADER = "date/time,settlement id,type,order id,sku,description,quantity,product sales,total"

REPORT_LINES = (
    "2024-01-05T15:04:05Z,S-1,Order,114-1111111-1111111,WIDGET,Widget,2,20.00,18.50",
    "2024-01-06T09:00:00Z,S-1,Order,114-2222222-2222222,GADGET,Gadget,1,10.00,9.00",
    "2024-01-07T10:30:00Z,S-1,Order,999-0000000-0000000,WIDGET,Widget,1,10.00,8.00",
)


def report(*lines: str, preamble: str = "Settlement report for January") -> bytes:
    body = [preamble, HEADER, *lines] if preamble else [HEADER, *lines]
    return ("\n".join(body) + "\n").encode("utf-8")
