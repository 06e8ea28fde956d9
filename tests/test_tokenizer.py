from __future__ import annotations

from statement_import.ingest.tokenizer import detect_separator, tokenize


def test_semicolons_win_over_stray_commas():
    text = "\n".join(
        [
            "Data;Descricao;Valor",
            "15/01/2024;PADARIA, CENTRO;-12.50",
            "16/01/2024;UBER TRIP;-23.45",
            "17/01/2024;FARMACIA, LOJA 2;-40.00",
            "18/01/2024;SALARIO;3000.00",
            "19/01/2024;PIX RECEBIDO;150.00",
        ]
    )

    sep, ambiguous = detect_separator(text)
    assert sep == ";"
    assert ambiguous is False

    table = tokenize(text)
    assert table.headers == ("Data", "Descricao", "Valor")
    assert len(table.rows) == 5
    assert table.rows[0] == ("15/01/2024", "PADARIA, CENTRO", "-12.50")


def test_tie_prefers_semicolon_and_reports_ambiguity():
    sep, ambiguous = detect_separator("a;b,c\n")
    assert sep == ";"
    assert ambiguous is True

    sep, ambiguous = detect_separator("a,b\tc\n")
    assert sep == ","
    assert ambiguous is True


def test_tab_separated():
    table = tokenize("Date\tDescription\tAmount\n2024-01-15\tUBER\t-10.00\n")
    assert table.separator == "\t"
    assert table.rows == (("2024-01-15", "UBER", "-10.00"),)


def test_quoted_cells_keep_embedded_separator_and_escaped_quotes():
    text = 'Data,Descricao,Valor\n15/01/2024,"LOJA, CENTRO",10.00\n16/01/2024,"say ""hi""",5.00\n'
    table = tokenize(text)
    assert table.separator == ","
    assert table.rows[0][1] == "LOJA, CENTRO"
    assert table.rows[1][1] == 'say "hi"'


def test_crlf_blank_and_empty_cell_rows_are_dropped():
    table = tokenize("a;b\r\n\r\n 1 ; 2 \r\n;\r\n   \r\n3;4\r")
    assert table.headers == ("a", "b")
    assert table.rows == (("1", "2"), ("3", "4"))


def test_no_candidates_falls_back_to_semicolon():
    sep, ambiguous = detect_separator("just some words\nand more words\n")
    assert sep == ";"
    assert ambiguous is False


def test_empty_input():
    table = tokenize("")
    assert table.headers == ()
    assert table.rows == ()


def test_detection_only_samples_first_five_lines():
    head = "\n".join(["a;b;c"] * 5)
    tail = "\n".join(["x,y,z,w,v,u"] * 20)
    sep, _ = detect_separator(head + "\n" + tail)
    assert sep == ";"
