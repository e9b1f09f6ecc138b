from pharmacy.services.pricing import PricedLine, compute_tax_cents, compute_totals


class TestComputeTotals:
    def test_two_units_at_twenty(self):
        totals = compute_totals([PricedLine(2000, 2)], discount_cents=0, tax_rate_bps=1250)

        assert totals.subtotal_cents == 4000
        assert totals.tax_cents == 500
        assert totals.discount_cents == 0
        assert totals.total_cents == 4500

    def test_total_identity_holds_with_discount(self):
        lines = [PricedLine(1999, 3), PricedLine(450, 1), PricedLine(12_345, 7)]
        totals = compute_totals(lines, discount_cents=777, tax_rate_bps=1250)

        assert totals.subtotal_cents == sum(line.line_total_cents for line in lines)
        assert totals.total_cents == totals.subtotal_cents + totals.tax_cents - totals.discount_cents

    def test_discount_larger_than_total_is_not_clamped(self):
        totals = compute_totals([PricedLine(100, 1)], discount_cents=1000, tax_rate_bps=1250)

        assert totals.subtotal_cents == 100
        assert totals.tax_cents == 13
        assert totals.total_cents == -887

    def test_empty_lines(self):
        totals = compute_totals([], discount_cents=0, tax_rate_bps=1250)
        assert totals.total_cents == 0


class TestTaxRounding:
    def test_half_cent_rounds_up(self):
        # 4 * 12.5% = 0.5 cents
        assert compute_tax_cents(4, 1250) == 1

    def test_below_half_rounds_down(self):
        # 3 * 12.5% = 0.375 cents
        assert compute_tax_cents(3, 1250) == 0

    def test_other_rate(self):
        assert compute_tax_cents(10_000, 1500) == 1500
