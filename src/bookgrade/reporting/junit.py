from __future__ import annotations

from pathlib import Path
from typing import Any

from junitparser import TestCase, TestSuite, JUnitXml, Failure

THRESHOLD_CASE = "passing threshold"


def write_junit(run_dir: Path, chapters: list[dict[str, Any]]) -> Path:
    """Write junit.xml from the per-chapter result dicts of a run, return path.

    One suite per chapter, one case per rule. A rule below its maximum is a
    failure, and an extra case fails when the chapter misses the passing
    threshold, so CI dashboards show both the gaps and the gate.
    """
    xml = JUnitXml()

    for item in chapters:
        chapter = item["chapter"]
        report = item["report"]

        suite = TestSuite(f"{chapter['id']} / {chapter.get('title') or chapter['id']}")
        suite.add_property("percentage", str(report["percentage"]))
        suite.add_property("grade", report["grade"])
        suite.add_property("status", chapter["status"])
        if item.get("previous_status"):
            suite.add_property("previous_status", item["previous_status"])
        suite.add_property("catalog_version", report.get("catalog_version", ""))
        suite.add_property("cached", str(bool(item.get("cached"))).lower())

        for subscore in report["subscores"]:
            case = TestCase(subscore["rule"])
            case.classname = f"{chapter['id']}.{subscore['category']}"
            if subscore["points_earned"] < subscore["points_possible"]:
                case.result = [
                    Failure(
                        f"{subscore['points_earned']:g}/{subscore['points_possible']:g}: "
                        f"{subscore['justification']}"
                    )
                ]
            suite.add_testcase(case)

        gate = TestCase(THRESHOLD_CASE)
        gate.classname = chapter["id"]
        if not item.get("passed", True):
            gate.result = [
                Failure(f"{report['percentage']:g}% ({report['grade']}) is below threshold")
            ]
        suite.add_testcase(gate)

        # Use append (not +=) to preserve properties
        xml.append(suite)

    junit_path = run_dir / "junit.xml"
    xml.write(str(junit_path), pretty=True)
    return junit_path


def failing_chapters(junit_path: Path) -> list[str]:
    """Names of suites whose passing-threshold case failed."""
    xml = JUnitXml.fromfile(str(junit_path))
    failing = []
    for suite in xml:
        for case in suite:
            if case.name == THRESHOLD_CASE and case.result:
                failing.append(suite.name)
    return failing
