from __future__ import annotations

from datetime import datetime, timezone

from docx import Document
from docx.oxml.ns import qn

from azure_inventory.export.document import TOC_CAPTION
from azure_inventory.export.word import DocxBackend
from azure_inventory.report import SECTIONS, write_report

from conftest import FakeSource, arm_id


def _source() -> FakeSource:
    vms = [
        {
            "id": arm_id("rg-app", "Microsoft.Compute", "virtualMachines", "vm-web"),
            "name": "vm-web",
            "location": "westeurope",
            "os_profile": {"computer_name": "web01"},
            "hardware_profile": {"vm_size": "Standard_B2s"},
            "instance_view": {"statuses": [{"code": "PowerState/running", "display_status": "VM running"}]},
        },
        {
            "id": arm_id("rg-app", "Microsoft.Compute", "virtualMachines", "vm-db"),
            "name": "vm-db",
            "location": "westeurope",
            "instance_view": {"statuses": [{"code": "PowerState/deallocated", "display_status": "VM deallocated"}]},
        },
    ]
    disks = [
        {
            "id": arm_id("rg-data", "Microsoft.Compute", "disks", "orphan-disk"),
            "name": "orphan-disk",
            "disk_size_gb": 64,
            "sku": {"name": "StandardSSD_LRS"},
            "disk_state": "Unattached",
        }
    ]
    return FakeSource(data={"list_virtual_machines": vms, "list_disks": disks})


def test_report_file_has_sections_in_order_with_toc(tmp_path) -> None:
    out = tmp_path / "Contoso-Azure.docx"
    stats = write_report(
        _source(),
        out,
        DocxBackend(),
        customer="Contoso",
        generated_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    assert out.exists()
    assert stats.tables == 2
    assert stats.sections == [s.heading for s in SECTIONS]

    doc = Document(str(out))
    texts = [p.text for p in doc.paragraphs]
    headings = [s.heading for s in SECTIONS]

    cap = texts.index(TOC_CAPTION)
    assert texts[cap + 1 : cap + 1 + len(headings)] == headings

    section_headings = [p.text for p in doc.paragraphs if p.style.name == "Heading 1"]
    assert section_headings == headings

    assert "No reservations were found in this subscription." in texts
    assert texts.index("No reservations were found in this subscription.") > texts.index("Reservations", cap + len(headings))

    vm_table, disk_table = doc.tables
    vm_rows = [[c.text for c in row.cells] for row in vm_table.rows]
    assert vm_rows[0][:2] == ["Name", "Computer Name"]
    assert [r[0] for r in vm_rows[1:]] == ["vm-db", "vm-web"]
    assert vm_rows[1][1] == "(vm-db)"
    assert vm_rows[2][1] == "web01"

    disk_rows = [[c.text for c in row.cells] for row in disk_table.rows]
    assert disk_rows[1][:3] == ["orphan-disk", "rg-data", "Unknown"]

    instr = [el.text for el in doc.element.body.iter(qn("w:instrText"))]
    assert len(instr) == 1 and instr[0].startswith("TOC")


def test_report_can_be_written_twice_with_same_toc(tmp_path) -> None:
    first = tmp_path / "a" / "Contoso-Azure.docx"
    second = tmp_path / "b" / "Contoso-Azure.docx"
    for path in (first, second):
        write_report(_source(), path, DocxBackend(), customer="Contoso")

    def toc(path):
        texts = [p.text for p in Document(str(path)).paragraphs]
        cap = texts.index(TOC_CAPTION)
        return texts[cap + 1 : cap + 1 + len(SECTIONS)]

    assert toc(first) == toc(second)
