"""
Streamlit Web Application for the MPC Node Payout Calculator

This application provides an interactive interface for exploring how a
floor/ceiling band around the 180-day average price changes monthly NEAR
payouts. Users adjust the USD target and band in the sidebar and the payout
schedule, yearly summaries and Altair charts are recomputed on every change.
"""

import io
import os

import streamlit as st
import altair as alt
import pandas as pd

from calculator import (
    CalculatorParams,
    DEFAULT_YEARS,
    PercentBand,
    PriceBand,
    compute,
    records_to_frame,
    summaries_to_frame,
)
from prices import read_price_buffer, read_price_file

DEFAULT_PRICE_DATA = os.environ.get("PAYOUT_PRICE_DATA", "data/price-data.json")

STATUS_COLORS = alt.Scale(
    domain=['FLOOR HIT', 'CEILING HIT', 'Normal'],
    range=['#22C55E', '#EF4444', '#3B82F6']
)

# Configure Streamlit page
st.set_page_config(
    page_title="MPC Node Payout Calculator",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_data
def load_prices_from_path(path: str) -> pd.Series:
    return read_price_file(path)


@st.cache_data
def load_prices_from_upload(data: bytes, filename: str) -> pd.Series:
    return read_price_buffer(io.BytesIO(data), filename)


def create_sidebar_config() -> tuple[CalculatorParams, object, pd.Series | None]:
    """
    Create sidebar configuration interface

    Returns:
        Tuple of (CalculatorParams, selected year or 'All', price series or None)
    """
    st.sidebar.title("Payout Configuration")
    st.sidebar.markdown("Adjust the payout target and band to explore different scenarios")

    # PRICE DATA
    with st.sidebar.expander("Price Data", expanded=False):
        data_path = st.text_input(
            "Price dataset path",
            value=DEFAULT_PRICE_DATA,
            help="JSON list of {date, close} records or a CSV with date and close columns."
        )
        uploaded = st.file_uploader("Or upload a price file", type=["json", "csv"])

    series = None
    try:
        if uploaded is not None:
            series = load_prices_from_upload(uploaded.getvalue(), uploaded.name)
        elif os.path.exists(data_path):
            series = load_prices_from_path(data_path)
    except ValueError as e:
        st.sidebar.error(f"Could not load price data: {e}")

    # PAYOUT TARGET
    with st.sidebar.expander("Payout Target", expanded=True):
        monthly_usd_target = st.number_input(
            "Monthly USD Target ($)",
            min_value=100.0, max_value=1_000_000.0, value=7200.0, step=100.0,
            help="USD value each monthly payout is sized for at the 180-day average price."
        )

    # FLOOR & CEILING BAND
    with st.sidebar.expander("Floor & Ceiling Band", expanded=True):
        band_mode = st.radio(
            "Band Mode",
            ["% of 180d Average", "Absolute Prices"],
            help="Percent bands move with each year's 180-day average. Absolute bands use the same prices every year."
        )

        if band_mode == "% of 180d Average":
            floor_percent = st.number_input(
                "Floor (% of 180d Avg)",
                min_value=5, max_value=95, value=80, step=5,
                help="Below this price the payout is topped up to guarantee this share of the USD target."
            ) / 100
            ceiling_percent = st.number_input(
                "Ceiling (% of 180d Avg)",
                min_value=105, max_value=1000, value=170, step=5,
                help="Above this price the payout is capped at this share of the USD target."
            ) / 100
            band = PercentBand(floor_percent, ceiling_percent)
            st.caption(
                f"Guaranteed minimum: ${monthly_usd_target * floor_percent:,.0f}/mo, "
                f"capped maximum: ${monthly_usd_target * ceiling_percent:,.0f}/mo"
            )
        else:
            floor_price = st.number_input(
                "Floor Price ($)",
                min_value=0.01, max_value=100.0, value=1.50, step=0.05
            )
            ceiling_price = st.number_input(
                "Ceiling Price ($)",
                min_value=0.02, max_value=200.0, value=5.00, step=0.05
            )
            if floor_price >= ceiling_price:
                st.error("⚠️ Floor price must be below the ceiling price")
                st.stop()
            band = PriceBand(floor_price, ceiling_price)

    # YEAR FILTER
    selected_year = st.sidebar.selectbox(
        "Filter Year",
        ["All"] + DEFAULT_YEARS,
        help="Baseline year to display. Payouts run from February of that year to January of the next."
    )

    params = CalculatorParams(monthly_usd_target=monthly_usd_target, band=band)
    return params, selected_year, series


def show_summary_cards(summaries, selected_year) -> None:
    """Render one card per year, marking the lookback source of the selected year"""
    if not summaries:
        return

    columns = st.columns(len(summaries))
    for col, s in zip(columns, summaries):
        with col:
            if selected_year != "All" and s.year == selected_year - 1:
                st.markdown(f"### :blue[{s.year}]")
                st.caption("← 180d lookback source")
            elif selected_year == s.year:
                st.markdown(f"### :orange[{s.year}]")
            else:
                st.markdown(f"### {s.year}")

            st.caption(f"180d Avg: ${s.baseline:,.2f}")
            st.caption(f":green[Floor: ${s.floor_price:,.2f}]")
            st.caption(f":red[Ceiling: ${s.ceiling_price:,.2f}]")
            st.write(f"{s.fixed_tokens:,.0f} NEAR/mo")
            st.caption(f":green[F:{s.floor_count}] :red[C:{s.ceiling_count}] :blue[N:{s.normal_count}]")
            st.metric(
                "Tokens Paid",
                f"{s.total_tokens_paid:,.0f}",
                delta=f"{s.net_token_impact:,.0f}",
                delta_color="inverse",
                help="Net token impact of the band: tokens added by floor hits minus tokens saved by ceiling hits."
            )


def create_charts(series: pd.Series, payouts: pd.DataFrame, summaries: pd.DataFrame,
                  params: CalculatorParams, selected_year) -> None:
    """
    Create price and payout charts using Altair

    Args:
        series: Daily closing prices
        payouts: Payout records as a DataFrame
        summaries: Year summaries as a DataFrame
        params: Calculator parameters used for the run
        selected_year: Year to display or 'All'
    """

    # Configure Altair
    alt.data_transformers.enable('json')

    # Price with dynamic floor/ceiling boundaries
    st.subheader("NEAR Price with Dynamic Floor/Ceiling Boundaries")
    st.caption("""
    Each year's band is derived from the 180-day average price before January 1st.
    Payouts priced below the floor are topped up, payouts above the ceiling are capped.
    """)
    price_df = pd.DataFrame({'Date': series.index, 'Price': series.to_numpy()})
    price_df['Year'] = price_df['Date'].dt.year
    if selected_year != "All":
        price_df = price_df[price_df['Year'] == selected_year]

    bands = summaries[['year', 'baseline', 'floor_price', 'ceiling_price']].rename(columns={
        'year': 'Year',
        'baseline': '180d Strike Price',
        'floor_price': 'Floor',
        'ceiling_price': 'Ceiling',
    })
    price_df = price_df.merge(bands, on='Year', how='left')
    price_melted = price_df.melt(
        id_vars=['Date'],
        value_vars=['Price', 'Ceiling', '180d Strike Price', 'Floor'],
        var_name='Series',
        value_name='USD'
    ).dropna()
    line_color_scale = alt.Scale(
        domain=['Price', 'Ceiling', '180d Strike Price', 'Floor'],
        range=['#3B82F6', '#EF4444', '#F59E0B', '#22C55E']
    )
    price_chart = alt.Chart(price_melted).mark_line(
        interpolate='step-after'
    ).encode(
        x=alt.X('Date:T', title='Date'),
        y=alt.Y('USD:Q', title='Price ($)', scale=alt.Scale(domain=[0, None])),
        color=alt.Color('Series:N', scale=line_color_scale),
        strokeDash=alt.StrokeDash('Series:N', scale=alt.Scale(
            domain=['Price', 'Ceiling', '180d Strike Price', 'Floor'],
            range=[[1, 0], [5, 5], [1, 0], [5, 5]]
        ), legend=None),
        tooltip=[
            alt.Tooltip('Date:T', title='Date'),
            alt.Tooltip('Series:N', title='Series'),
            alt.Tooltip('USD:Q', title='USD', format='$.3f')
        ]
    ).properties(
        height=400
    ).interactive()
    st.altair_chart(price_chart, use_container_width=True)

    if payouts.empty:
        return

    # Monthly payout USD value
    st.subheader("Monthly Payout USD Value")
    st.caption("""
    Nominal value is the fixed token amount at the payout price. Effective value is what is
    actually paid after the floor guarantee or ceiling cap.
    """)
    value_df = payouts[['payout_date', 'nominal_usd_value', 'effective_usd_value', 'status']].rename(columns={
        'payout_date': 'Payout Date',
        'nominal_usd_value': 'Nominal',
        'effective_usd_value': 'Effective',
        'status': 'Status',
    })
    value_melted = value_df.melt(
        id_vars=['Payout Date', 'Status'],
        var_name='Value Type',
        value_name='USD Value'
    )
    base = alt.Chart(value_melted)
    value_lines = base.mark_line(strokeWidth=2).encode(
        x=alt.X('Payout Date:T', title='Payout Date'),
        y=alt.Y('USD Value:Q', title='USD Value'),
        strokeDash=alt.StrokeDash('Value Type:N', scale=alt.Scale(domain=['Effective', 'Nominal'], range=[[1, 0], [4, 4]])),
        color=alt.value('#8B5CF6')
    )
    value_points = base.transform_filter(
        alt.datum['Value Type'] == 'Effective'
    ).mark_circle(size=70).encode(
        x='Payout Date:T',
        y='USD Value:Q',
        color=alt.Color('Status:N', scale=STATUS_COLORS),
        tooltip=[
            alt.Tooltip('Payout Date:T', title='Date'),
            alt.Tooltip('Status:N', title='Status'),
            alt.Tooltip('USD Value:Q', title='Effective USD', format='$,.2f')
        ]
    )
    # Absolute bands imply a different USD guarantee each year, so only the target is drawn
    guarantee_levels = [('Target', params.monthly_usd_target)]
    if isinstance(params.band, PercentBand):
        guarantee_levels.append(('Floor Guarantee', params.monthly_usd_target * params.band.floor_percent))
        guarantee_levels.append(('Ceiling Cap', params.monthly_usd_target * params.band.ceiling_percent))
    guarantee_df = pd.DataFrame(guarantee_levels, columns=['Level', 'USD'])
    guarantee_rules = alt.Chart(guarantee_df).mark_rule(
        color='gray',
        strokeDash=[5, 5],
        opacity=0.6
    ).encode(
        y='USD:Q',
        tooltip=['Level:N', alt.Tooltip('USD:Q', format='$,.0f')]
    )
    combined_value = (value_lines + value_points + guarantee_rules).properties(height=350).interactive()
    st.altair_chart(combined_value, use_container_width=True)

    # Token delta per payout
    st.subheader("Token Adjustment per Payout")
    st.caption("""
    Positive bars are extra NEAR paid because the price fell below the floor.
    Negative bars are NEAR saved because the price rose above the ceiling.
    """)
    delta_df = payouts[['payout_date', 'token_delta', 'status']].rename(columns={
        'payout_date': 'Payout Date',
        'token_delta': 'Token Delta',
        'status': 'Status',
    })
    delta_chart = alt.Chart(delta_df).mark_bar().encode(
        x=alt.X('Payout Date:T', title='Payout Date'),
        y=alt.Y('Token Delta:Q', title='NEAR vs Fixed Amount'),
        color=alt.Color('Status:N', scale=STATUS_COLORS),
        tooltip=[
            alt.Tooltip('Payout Date:T', title='Date'),
            alt.Tooltip('Status:N', title='Status'),
            alt.Tooltip('Token Delta:Q', title='Token Delta', format=',.0f')
        ]
    ).properties(
        height=300
    ).interactive()
    st.altair_chart(delta_chart, use_container_width=True)


def show_payout_table(payouts: pd.DataFrame, summaries: pd.DataFrame) -> None:
    """Detailed payout table with CSV export"""
    st.subheader("Monthly Payout Details")

    table = payouts[[
        'payout_date', 'year', 'baseline', 'floor_price', 'ceiling_price', 'fixed_tokens',
        'effective_tokens', 'price_at_payout', 'nominal_usd_value', 'effective_usd_value', 'status'
    ]].rename(columns={
        'payout_date': 'Date',
        'year': 'Year',
        'baseline': '180d Avg',
        'floor_price': 'Floor',
        'ceiling_price': 'Ceiling',
        'fixed_tokens': 'Fixed NEAR',
        'effective_tokens': 'Effective NEAR',
        'price_at_payout': 'Price @ Payout',
        'nominal_usd_value': 'Nominal USD',
        'effective_usd_value': 'Effective USD',
        'status': 'Status',
    })
    st.dataframe(
        table,
        use_container_width=True,
        hide_index=True,
        column_config={
            '180d Avg': st.column_config.NumberColumn(format="$%.2f"),
            'Floor': st.column_config.NumberColumn(format="$%.2f"),
            'Ceiling': st.column_config.NumberColumn(format="$%.2f"),
            'Fixed NEAR': st.column_config.NumberColumn(format="%.0f"),
            'Effective NEAR': st.column_config.NumberColumn(format="%.0f"),
            'Price @ Payout': st.column_config.NumberColumn(format="$%.2f"),
            'Nominal USD': st.column_config.NumberColumn(format="$%.2f"),
            'Effective USD': st.column_config.NumberColumn(format="$%.2f"),
        }
    )

    # Data export section
    with st.expander("Export Payout Data"):
        st.markdown("Download payout results for further analysis")
        col1, col2 = st.columns(2)
        with col1:
            st.download_button(
                label="Download Payouts (CSV)",
                data=payouts.to_csv(index=False),
                file_name="payouts.csv",
                mime="text/csv"
            )
        with col2:
            st.download_button(
                label="Download Year Summaries (CSV)",
                data=summaries.to_csv(index=False),
                file_name="year_summaries.csv",
                mime="text/csv"
            )


def main():
    """Main Streamlit application"""

    # Header
    st.title("MPC Node Payout Calculator")
    st.markdown("""
    **NEAR Protocol - Dynamic Floor & Ceiling Analysis (% of 180-day Lookback)**

    Each year's monthly payout is sized from the 180-day average NEAR price before January 1st.
    When the payout-day price leaves the floor/ceiling band the token amount is repriced so the
    USD value is guaranteed at the floor or capped at the ceiling.
    """)

    params, selected_year, series = create_sidebar_config()

    if series is None:
        st.info("Provide a price dataset in the sidebar to begin analysis")
        return

    # Recomputed from scratch on every rerun
    records, summaries = compute(series, params, DEFAULT_YEARS)
    payouts_df = records_to_frame(records)
    summaries_df = summaries_to_frame(summaries)

    if not records:
        st.warning("⚠️ Not enough price history to compute any payouts for the configured years")
        return

    show_summary_cards(summaries, selected_year)

    if selected_year != "All":
        payouts_view = payouts_df[payouts_df['year'] == selected_year]
    else:
        payouts_view = payouts_df

    create_charts(series, payouts_view, summaries_df, params, selected_year)
    show_payout_table(payouts_view, summaries_df)

    st.markdown("---")
    st.caption("NEAR Foundation - MPC Governance Payout Calculator")
    st.caption(f"Data: {series.index.min():%b %Y} - {series.index.max():%b %Y} | "
               "Dynamic floor/ceiling based on % of 180-day lookback")


if __name__ == "__main__":
    main()
