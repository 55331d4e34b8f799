# app_streamlit.py
import streamlit as st
from table_diff_core import Transform
from table_diff_excel import ReportConfig
from table_diff_jobs import compare_and_render

st.set_page_config(page_title="Table Diff", layout="wide")

st.title("🔍 Before / After Table Diff")

before_file = st.file_uploader("Upload 'before' file (CSV/XLSX)", type=["csv", "xlsx", "xls"], key="f1")
after_file = st.file_uploader("Upload 'after' file (CSV/XLSX)", type=["csv", "xlsx", "xls"], key="f2")


def split_csv(text):
    return [c.strip() for c in text.split(",") if c.strip()]


def run_comparison(before, after, cfg, **options):
    """Compare two uploads; any failure is shown in the page and yields None."""
    try:
        return compare_and_render(before, after, cfg, **options)
    except Exception as e:
        st.error(f"Error: {e}")
        return None


with st.expander("⚙️ Options"):
    col1, col2, col3 = st.columns(3)
    with col1:
        keys_text = st.text_input("Key columns (comma-separated). Leave blank to pair by row order.", value="")
        columns_text = st.text_input("Columns to compare (blank = all)", value="")
        ignore_text = st.text_input("Columns ignored for change detection", value="")
    with col2:
        result_mode = st.selectbox("Result mode", ["inline", "side"], index=0)
        result_group = st.checkbox("Group rows by operation", value=False)
        include_unmodified = st.checkbox("Include unmodified rows", value=False)
        before_label = st.text_input("'Before' environment", value="BEFORE")
        after_label = st.text_input("'After' environment", value="AFTER")
    with col3:
        date_column = st.text_input("Date column to reformat (optional)", value="")
        date_from = st.text_input("Date format in file", value="YYYY-MM-DD")
        date_to = st.text_input("Date format in report", value="DD/MM/YYYY")
        null_columns_text = st.text_input("Columns where '?' means null", value="")

transforms = []
if date_column.strip():
    transforms.append(Transform.date(date_column.strip(), date_from, date_to))
transforms += [Transform.check_null(c) for c in split_csv(null_columns_text)]

run = st.button("Compare & Generate")

if run:
    if not before_file or not after_file:
        st.warning("Please upload both files.")
    else:
        with st.spinner("Processing..."):
            cfg = ReportConfig(
                result_mode=result_mode,
                result_group=result_group,
                include_unmodified=include_unmodified,
                before_label=before_label,
                after_label=after_label,
            )
            result = run_comparison(
                before_file, after_file, cfg,
                keys=split_csv(keys_text),
                remap_before=transforms,
                remap_after=transforms,
                compare_columns=split_csv(columns_text) or None,
                ignore_fields=split_csv(ignore_text),
            )
        if result is not None:
            summary = result["summary"]
            st.success("Completed!")

            with st.container():
                st.write("**Keys used:**", ", ".join(summary["keys_used"]) if summary["keys_used"] else "Row order")
                st.write("**Added:**", summary["added"], " **Removed:**", summary["removed"],
                         " **Modified:**", summary["modified"], " **Unmodified:**", summary["unmodified"])

            st.dataframe(result["preview_df"], use_container_width=True)

            st.download_button(
                label="📥 Download Excel (table_difference.xlsx)",
                data=result["excel_bytes"],
                file_name="table_difference.xlsx",
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )
