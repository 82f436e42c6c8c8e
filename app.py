import streamlit as st

from ra_table import RelAlgError, TableFactory, TypeCheck
from ra_query import evaluate, parse_query, parse_relations

st.set_page_config(page_title="Mini-Relation: Table Algebra Runner", page_icon="🧮", layout="wide")

DEFAULT_REL = """movie (title:String, year:Integer, length:Integer, genre:String, studioName:String, producerNo:Integer) key (title, year) = {
  "Star_Wars", 1977, 124, "sciFi", "Fox", 12345
  "Star_Wars_2", 1980, 124, "sciFi", "Fox", 12345
  "Rocky", 1985, 200, "action", "Universal", 12125
  "Rambo", 1978, 100, "action", "Universal", 32355
}

studio (name:String, address:String, presNo:Integer) key (name) = {
  "Fox", "Los_Angeles", 7777
  "Universal", "Universal_City", 8888
  "DreamWorks", "Universal_City", 9999
}

producer (producerNo:Integer, year:Integer, producerName:String) key (producerNo) = {
  12345, 1977, "Producer_1"
  12125, 1985, "Producer_2"
  32356, 1978, "Producer_3"
}"""

DEFAULT_QUERY = 'movie ⋈_{studioName = name} studio'

if "relations" not in st.session_state:
    st.session_state.relations = DEFAULT_REL
if "query" not in st.session_state:
    st.session_state.query = DEFAULT_QUERY

st.title("🧮 Mini-Relation — Table Algebra Runner")
st.write(
    "Tables are built by inserting each row, so only the input tables carry a primary-key index. "
    "Supports σ (select by key), π (project), ⋈ (natural / equi join), ⋃ and −."
)

with st.sidebar:
    st.subheader("Engine options")
    type_check = st.radio(
        "Insert type check",
        [TypeCheck.DECLARED.value, TypeCheck.FIRST_ROW.value],
        help="declared: values must match the column domains. first_row: values must match the first inserted row.",
    )
    index_derived = st.checkbox("Index derived tables", value=False,
                                help="Rebuild the primary-key index on every operator result.")
    strict_domains = st.checkbox("Reject unknown domains", value=False)

def make_factory() -> TableFactory:
    return TableFactory(type_check=TypeCheck(type_check), index_derived=index_derived,
                        strict_domains=strict_domains)

# Inputs
col1, col2 = st.columns([1, 1], gap="large")

with col1:
    st.subheader("Relations input")
    st.text_area(
        "Define one or more relations",
        value=st.session_state.relations,
        height=300,
        help="Format: Name (A:String, B:Integer) key (A) = {\n  v1, v2\n  ...\n}",
        key="relations",
    )

with col2:
    st.subheader("Query")
    st.caption("Dockbar: click to insert tokens (appends to the end).")
    row1 = ['σ', 'π', '⋈', '⋃', '−']
    row2 = ['_{', '}', '(', ')', ',', '=', 'AND', '"']

    def insert(tok: str):
        st.session_state.query = (st.session_state.get("query") or "") + tok

    c = st.columns(len(row1))
    for i, t in enumerate(row1):
        if c[i].button(t, use_container_width=True): insert(t)
    c = st.columns(len(row2))
    for i, t in enumerate(row2):
        if c[i].button(t, use_container_width=True): insert(t)

    with st.expander("📚 Examples (click to expand/collapse)"):
        st.code('σ "Star_Wars", 1977 (movie)', language="text")
        st.code('π title, year (movie)', language="text")
        st.code('movie ⋈_{studioName = name} studio', language="text")
        st.code('movie ⋈ producer', language="text")
        st.code('(π title, year (movie)) ⋃ (π title, year (movie))', language="text")
        st.code('movie − movie', language="text")

    st.text_area(
        "Enter a relational algebra query",
        value=st.session_state.query,
        height=220,
        help="σ key values (E), π columns (E), E ⋈ E, E ⋈_{a = b} E, E ⋃ E, E − E.",
        key="query",
    )

# Visualize input relations
st.subheader("👀 Visualize Input Relations")
try:
    env_preview = parse_relations(st.session_state.relations, make_factory())
    for name, table in env_preview.items():
        st.markdown(f"**{name}** — schema: {table.attributes}  \nkey: {table.key} · _rows: {len(table)}_")
        st.table(table.to_records())
except RelAlgError as e:
    st.error(f"{type(e).__name__} while parsing relations: {e}")

# Run
if st.button("▶️ Run", type="primary"):
    try:
        env = parse_relations(st.session_state.relations, make_factory())
        ast = parse_query(st.session_state.query)
        result = evaluate(ast, env)
        st.success(f"Query executed successfully! Result table: {result.name}")

        tabs = st.tabs(["Result Table", "Result Text", "Parse Details"])
        with tabs[0]:
            if result.tuples:
                st.table(result.to_records())
                st.download_button("Download CSV", data=result.to_csv(), file_name="result.csv", mime="text/csv")
            else:
                st.info("Empty result set.")
            if not result.has_index:
                st.caption("Rows produced by an operator are not in the primary-key index; σ on this table only sees inserted rows.")
        with tabs[1]:
            st.code(str(result), language="text")
        with tabs[2]:
            st.markdown("**Original query**")
            st.code(st.session_state.query, language="text")
            st.markdown("**Parsed expression**")
            st.code(repr(ast), language="text")
            st.markdown("**Result schema**")
            st.json(result.to_dict())

    except RelAlgError as e:
        st.error(f"{type(e).__name__}: {e}")
    except Exception as e:
        st.exception(e)
else:
    st.info("Enter input, build your query with the dockbar, then click **Run**.")
