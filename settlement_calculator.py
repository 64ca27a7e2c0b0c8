import argparse
import datetime
import os
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Any

import pytz
from dateutil import parser

import settlement_config

busser_tipout_options = settlement_config.busser_tipout_options
bartender_tipout_options = settlement_config.bartender_tipout_options
declare_options = settlement_config.declare_options
BUSSER_PERCENTAGE = settlement_config.BUSSER_PERCENTAGE
BARTENDER_PERCENTAGE = settlement_config.BARTENDER_PERCENTAGE
DECLARE_PERCENTAGE = settlement_config.DECLARE_PERCENTAGE

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")

# Parsed amounts must sit within 10**-30 .. 10**30
MAX_EXPONENT = 30
ARITHMETIC_PRECISION = 100

TRUE_STRINGS = ("true", "yes", "y", "1", "on")


def log(message):
    message_timestamp = datetime.datetime.fromtimestamp(time.time()).strftime('%Y-%m-%d_%H.%M.%S')
    full_message = f"{message_timestamp} {message}"
    print(full_message, flush=True)


class PartyGratuityDirection(Enum):
    USER_OWES_PEER = "USER_OWES_PEER"
    PEER_OWES_USER = "PEER_OWES_USER"
    UNSPECIFIED = "UNSPECIFIED"


# Raw form values: numbers, numeric strings, empty strings or None
@dataclass(frozen=True)
class SettlementInputs:
    cash_sales: Any = None
    credit_sales: Any = None
    cashed_out_or_in: Any = None
    shared_party: Any = False
    party_subtotal: Any = None
    party_gratuity: Any = None
    check_under_my_name: Any = None
    declare_percentage: Any = None
    busser_tip_out_percent: Any = None
    bartender_tip_out_percent: Any = None


@dataclass(frozen=True)
class SettlementResult:
    total_sales: Decimal
    declared_tips: Decimal
    main_tip_out_base: Decimal
    tipped_out_on_party_subtotal: bool
    busser_tip_out: Decimal
    bartender_tip_out: Decimal
    net_tips: Decimal
    final_amount: Decimal
    has_party_gratuity: bool
    party_busser_tip_out: Decimal
    party_bartender_tip_out: Decimal
    party_gratuity_after_tip_outs: Decimal
    party_gratuity_split: Decimal
    party_gratuity_direction: PartyGratuityDirection

    @property
    def owes_house(self):
        return self.final_amount >= 0


def to_decimal(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip().replace("$", "").replace(",", "")
        try:
            amount = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
    if not amount.is_finite():
        return None
    return amount


def parse_optional_money(value):
    amount = to_decimal(value)
    if amount is None or amount.is_zero():
        return amount
    # Amounts this far out are typos, not sales
    if not -MAX_EXPONENT <= amount.adjusted() <= MAX_EXPONENT:
        return None
    return amount


def parse_money(value):
    amount = parse_optional_money(value)
    if amount is None:
        return ZERO
    return amount


def parse_flag(value):
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


def parse_optional_flag(value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_flag(value)


def percent_of(base, percentage):
    return base * percentage / HUNDRED


def get_direction(check_under_my_name):
    if check_under_my_name is None:
        return PartyGratuityDirection.UNSPECIFIED
    if check_under_my_name:
        # user holds the whole gratuity on their check
        return PartyGratuityDirection.USER_OWES_PEER
    return PartyGratuityDirection.PEER_OWES_USER


def compute(inputs):
    cash_sales = parse_money(inputs.cash_sales)
    credit_sales = parse_money(inputs.credit_sales)
    cashed_out_or_in = parse_money(inputs.cashed_out_or_in)
    declare_percentage = parse_money(inputs.declare_percentage)
    busser_percentage = parse_money(inputs.busser_tip_out_percent)
    bartender_percentage = parse_money(inputs.bartender_tip_out_percent)
    shared_party = parse_flag(inputs.shared_party)
    party_subtotal = parse_optional_money(inputs.party_subtotal)
    party_gratuity = parse_optional_money(inputs.party_gratuity)
    check_under_my_name = parse_optional_flag(inputs.check_under_my_name)

    with localcontext() as context:
        context.prec = ARITHMETIC_PRECISION

        total_sales = cash_sales + credit_sales
        declared_tips = percent_of(total_sales, declare_percentage)

        # Tip outs come off the party subtotal only when sharing a party
        tipped_out_on_party_subtotal = shared_party and party_subtotal is not None and party_subtotal >= 0
        if tipped_out_on_party_subtotal:
            main_tip_out_base = party_subtotal
        else:
            main_tip_out_base = total_sales

        busser_tip_out = percent_of(main_tip_out_base, busser_percentage)
        bartender_tip_out = percent_of(main_tip_out_base, bartender_percentage)
        net_tips = declared_tips - busser_tip_out - bartender_tip_out
        final_amount = cash_sales + net_tips - cashed_out_or_in

        has_party_gratuity = shared_party and party_gratuity is not None and party_subtotal is not None
        party_busser_tip_out = ZERO
        party_bartender_tip_out = ZERO
        party_gratuity_after_tip_outs = ZERO
        party_gratuity_split = ZERO
        direction = PartyGratuityDirection.UNSPECIFIED
        if has_party_gratuity:
            # The gratuity is its own stream and is always tipped out on the party subtotal
            party_tip_out_base = party_subtotal
            party_busser_tip_out = percent_of(party_tip_out_base, busser_percentage)
            party_bartender_tip_out = percent_of(party_tip_out_base, bartender_percentage)
            party_gratuity_after_tip_outs = party_gratuity - party_busser_tip_out - party_bartender_tip_out
            party_gratuity_split = party_gratuity_after_tip_outs / 2
            direction = get_direction(check_under_my_name)

    return SettlementResult(
        total_sales=total_sales,
        declared_tips=declared_tips,
        main_tip_out_base=main_tip_out_base,
        tipped_out_on_party_subtotal=tipped_out_on_party_subtotal,
        busser_tip_out=busser_tip_out,
        bartender_tip_out=bartender_tip_out,
        net_tips=net_tips,
        final_amount=final_amount,
        has_party_gratuity=has_party_gratuity,
        party_busser_tip_out=party_busser_tip_out,
        party_bartender_tip_out=party_bartender_tip_out,
        party_gratuity_after_tip_outs=party_gratuity_after_tip_outs,
        party_gratuity_split=party_gratuity_split,
        party_gratuity_direction=direction,
    )


def to_amount(value):
    amount = to_decimal(value)
    if amount is None:
        return ZERO
    return amount


def format_currency(value):
    amount = abs(to_amount(value))
    with localcontext() as context:
        # quantize needs room for every integer digit plus the cents
        context.prec = max(context.prec, amount.adjusted() + 3)
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    return f"${amount:f}"


def format_signed(value):
    sign = "-" if to_amount(value) < 0 else ""
    return f"{sign}{format_currency(value)}"


def tally_label(final_amount):
    if to_amount(final_amount) >= 0:
        return "You Owe"
    return "You are owed"


def describe_final_amount(result):
    return f"{tally_label(result.final_amount)} {format_currency(result.final_amount)}"


def party_split_message(result):
    if not result.has_party_gratuity:
        return None
    split = format_currency(result.party_gratuity_split)
    if result.party_gratuity_direction == PartyGratuityDirection.USER_OWES_PEER:
        return f"You owe your party partner {split}"
    if result.party_gratuity_direction == PartyGratuityDirection.PEER_OWES_USER:
        return f"Your party partner owes you {split}"
    return f"Split {split} with your party partner"


def get_shift_date(shift_date, tz):
    if not shift_date:
        return datetime.datetime.now(tz)
    shift_datetime = parser.parse(shift_date)
    if shift_datetime.tzinfo is None:
        return tz.localize(shift_datetime)
    return shift_datetime.astimezone(tz)


def build_parser():
    arg_parser = argparse.ArgumentParser(
        prog="shift-settlement",
        description="Check out calculator: what a server owes the house (or is owed) at close of shift.")
    arg_parser.add_argument("--cash-sales", default="")
    arg_parser.add_argument("--credit-sales", default="")
    arg_parser.add_argument("--cashed-out-or-in", default="",
                            help="Signed. Positive if you already paid the house, negative if the house owes you.")
    arg_parser.add_argument("--declare", default=DECLARE_PERCENTAGE,
                            help=f"Declared tip percent. Usual options: {', '.join(declare_options)}")
    arg_parser.add_argument("--busser", default=BUSSER_PERCENTAGE,
                            help=f"Busser/runner tip out percent. Usual options: {', '.join(busser_tipout_options)}")
    arg_parser.add_argument("--bartender", default=BARTENDER_PERCENTAGE,
                            help=f"Bartender tip out percent. Usual options: {', '.join(bartender_tipout_options)}")
    arg_parser.add_argument("--shared-party", action="store_true")
    arg_parser.add_argument("--party-subtotal", default=None)
    arg_parser.add_argument("--party-gratuity", default=None)
    check_group = arg_parser.add_mutually_exclusive_group()
    check_group.add_argument("--check-under-my-name", dest="check_under_my_name",
                             action="store_const", const=True, default=None)
    check_group.add_argument("--check-under-partner", dest="check_under_my_name",
                             action="store_const", const=False)
    arg_parser.add_argument("--shift-date", default=None)
    return arg_parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    timezone_name = os.getenv("SETTLEMENT_TIMEZONE", settlement_config.timezone)
    try:
        tz = pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        log(f"Errors: unknown timezone {timezone_name}")
        return 1

    try:
        shift_datetime = get_shift_date(args.shift_date, tz)
    except (ValueError, OverflowError) as e:
        log(f"Errors: could not read shift date {args.shift_date!r}: {e}")
        return 1

    log(f"Settling shift for {shift_datetime.strftime('%Y-%m-%d')}")
    result = compute(SettlementInputs(
        cash_sales=args.cash_sales,
        credit_sales=args.credit_sales,
        cashed_out_or_in=args.cashed_out_or_in,
        shared_party=args.shared_party,
        party_subtotal=args.party_subtotal,
        party_gratuity=args.party_gratuity,
        check_under_my_name=args.check_under_my_name,
        declare_percentage=args.declare,
        busser_tip_out_percent=args.busser,
        bartender_tip_out_percent=args.bartender,
    ))
    if result.tipped_out_on_party_subtotal:
        log(f"Shared party. Tipping out on party subtotal {format_signed(result.main_tip_out_base)}")
    elif args.shared_party:
        log("Shared party without a usable party subtotal. Tipping out on total sales")

    print("Line|Amount")
    print(f"Total Sales|{format_signed(result.total_sales)}")
    print(f"Declared Tips|{format_signed(result.declared_tips)}")
    print(f"Busser/Runner Tip Out|{format_signed(result.busser_tip_out)}")
    print(f"Bartender Tip Out|{format_signed(result.bartender_tip_out)}")
    print(f"Net Tips|{format_signed(result.net_tips)}")
    print(f"Cash In/Out Total|{format_signed(args.cashed_out_or_in)}")
    if result.has_party_gratuity:
        print(f"Party Busser/Runner Tip Out|{format_signed(result.party_busser_tip_out)}")
        print(f"Party Bartender Tip Out|{format_signed(result.party_bartender_tip_out)}")
        print(f"Party Gratuity After Tip Outs|{format_signed(result.party_gratuity_after_tip_outs)}")
        print(f"Party Gratuity Split|{format_signed(result.party_gratuity_split)}")

    print(describe_final_amount(result))
    split_message = party_split_message(result)
    if split_message:
        print(split_message)

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
